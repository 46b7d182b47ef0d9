"""
Invoice generation
"""
from .plain import PlainInvoiceService, format_money

__all__ = ["PlainInvoiceService", "format_money"]
