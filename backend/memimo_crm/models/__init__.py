from .auth import Role, User, SessionToken, AuthLog
from .customers import Customer
from .catalog import ProductCategory, Product
from .sales import Sale, SaleLine, PAYMENT_METHODS
from .campaigns import Campaign, CampaignCustomer, CAMPAIGN_CHANNELS, CAMPAIGN_STATUSES, DISCOUNT_TYPES

__all__ = [
    'Role', 'User', 'SessionToken', 'AuthLog',
    'Customer',
    'ProductCategory', 'Product',
    'Sale', 'SaleLine', 'PAYMENT_METHODS',
    'Campaign', 'CampaignCustomer', 'CAMPAIGN_CHANNELS', 'CAMPAIGN_STATUSES', 'DISCOUNT_TYPES',
]
