"""
Entity services.

Routes import the shared instances below; services hold no per-request state
(the acting user is always passed in as a UserContext).
"""

from .base import EntityService, ValidationError  # noqa: F401
from .contracts import ContractService
from .directory import ClientService, PersonnelService
from .invoices import InvoiceLineService, InvoiceService
from .payroll import PayrollService
from .missions import MissionService
from .planning import EventService
from .recruitment import CandidateService, JobOfferService
from .training import ParticipantService, TrainingService
from .users import UserService

clients = ClientService()
personnel = PersonnelService()
contracts = ContractService()
invoices = InvoiceService()
invoice_lines = InvoiceLineService()
payrolls = PayrollService()
trainings = TrainingService()
participants = ParticipantService()
events = EventService()
missions = MissionService()
job_offers = JobOfferService()
candidates = CandidateService()
users = UserService()
