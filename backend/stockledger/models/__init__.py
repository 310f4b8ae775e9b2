from .catalog import User, RawMaterial, Product, ProductStructure
from .inventory import (
    UserInventory,
    ManufacturingRun,
    RawMaterialTransfer,
    ProductTransfer,
    RawMaterialConsumption,
    StockMovement,
)
from .documents import (
    SequenceCounter,
    Invoice,
    InvoiceItem,
    Bill,
    Payment,
    VendorPayment,
    VendorCreditNote,
)

__all__ = [
    'User', 'RawMaterial', 'Product', 'ProductStructure',
    'UserInventory', 'ManufacturingRun', 'RawMaterialTransfer', 'ProductTransfer',
    'RawMaterialConsumption', 'StockMovement',
    'SequenceCounter', 'Invoice', 'InvoiceItem',
    'Bill', 'Payment', 'VendorPayment', 'VendorCreditNote',
]
