from .tenancy import Tenant, Branch, TaxIdentity, INVOICE_PREFIX_PATTERN, is_valid_invoice_prefix
from .catalog import Product, ProductBarcode, InventoryBatch, TAX_INCLUSIVE, TAX_EXCLUSIVE
from .invoices import Invoice, InvoiceLine, InvoiceLineAllocation, InvoiceTaxLine

__all__ = [
    'Tenant', 'Branch', 'TaxIdentity', 'INVOICE_PREFIX_PATTERN', 'is_valid_invoice_prefix',
    'Product', 'ProductBarcode', 'InventoryBatch',
    'TAX_INCLUSIVE', 'TAX_EXCLUSIVE',
    'Invoice', 'InvoiceLine', 'InvoiceLineAllocation', 'InvoiceTaxLine',
]
