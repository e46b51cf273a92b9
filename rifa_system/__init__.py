"""
Rifa System Package
Numbered-ticket raffles for caixinhas with auditable external-entropy draws
"""

__version__ = "1.0.0"

# Export main components
from .errors import RifaError
from .database import create_rifa_engine, setup_rifa_database
from .tickets import TicketLedger
from .lifecycle import RifaManager
from .draw import RifaDraw
from .verification import VerificationService
from .comprovante import ComprovanteGenerator
from .service import RifaService

__all__ = [
    'RifaError',
    'create_rifa_engine',
    'setup_rifa_database',
    'TicketLedger',
    'RifaManager',
    'RifaDraw',
    'VerificationService',
    'ComprovanteGenerator',
    'RifaService'
]
