# utils/__init__.py
# This file makes the utils directory a Python package

"""
Utils Package for the Workforce HR backend

Response helpers, auth decorators and tokens, spreadsheet I/O, the labour
upload processor, attendance parsing and the report builders.
"""
