"""Playwright smoke tests run as local commands by the health-check runner.

`smoke_tests.twenty` logs in to the Twenty CRM and walks a Person/Company
record journey; it exits non-zero on the first failed expectation.
"""
