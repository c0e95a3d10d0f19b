"""
Resource Allocation Platform
Blueprint package. Each module exposes one blueprint; ``create_app``
registers them under ``/api/v1``.
"""
