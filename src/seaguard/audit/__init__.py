from .ledger import AuditLedger, diff_fields, parse_filters, placeholder_email

__all__ = ["AuditLedger", "diff_fields", "parse_filters", "placeholder_email"]
