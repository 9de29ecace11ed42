from .catalog import Client, Product
from .inventory import StockMovement, StockBalance
from .sales import Sale, SaleItem
from .consignments import Consignment, ConsignmentItem
from .receivables import AccountReceivable

__all__ = [
    'Client', 'Product',
    'StockMovement', 'StockBalance',
    'Sale', 'SaleItem',
    'Consignment', 'ConsignmentItem',
    'AccountReceivable',
]
