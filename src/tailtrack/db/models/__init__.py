from tailtrack.db.models.base import ORMBase
from tailtrack.db.models.period import Period
from tailtrack.db.models.allocation import Allocation


__all__ = ['ORMBase', 'Allocation', 'Period']
