from .catalog import Brand, Category, Unit, Warehouse, Material, Product, ProductVariant
from .stock import Stock, StockMovement
from .customers import Customer, CustomerPayment, CreditTransaction
from .invoices import Invoice, InvoiceItem, Payment
from .returns import Return, ReturnItem, DamagedItem
from .documents import DocumentSequence, History

__all__ = [
    'Brand', 'Category', 'Unit',
    'Warehouse', 'Material', 'Product', 'ProductVariant',
    'Stock', 'StockMovement',
    'Customer', 'CustomerPayment', 'CreditTransaction',
    'Invoice', 'InvoiceItem', 'Payment',
    'Return', 'ReturnItem', 'DamagedItem',
    'DocumentSequence', 'History',
]
