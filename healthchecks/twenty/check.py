# Check if Twenty is up and running.
CHECK = {
    "name": "twenty",
    "url": "https://crm.technative.eu",
    # "expected_content": "login",
    # "not_expected_content": "upgrade",
}
