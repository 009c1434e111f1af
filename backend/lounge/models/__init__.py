from .stations import Station, Game
from .customers import Customer, LoyaltyTransaction
from .sessions import GamingSession
from .payments import Payment, PaymentSplit, PaymentSplitPart, MobileMoneyRequest
from .stats import DailyStat
from .system import SchemaVersion, SCHEMA_VERSION

__all__ = [
    'Station', 'Game',
    'Customer', 'LoyaltyTransaction',
    'GamingSession',
    'Payment', 'PaymentSplit', 'PaymentSplitPart', 'MobileMoneyRequest',
    'DailyStat',
    'SchemaVersion', 'SCHEMA_VERSION',
]
