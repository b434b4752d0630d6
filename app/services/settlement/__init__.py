"""
Settlement services package.

Contains modular services for tranche settlement:
- chain_provider: Recruitment chain access and validation
- calculator: Pure settlement computation
- ledger: Per-seller surplus balance
- workflow: Settlement creation and confirmation
- trigger_detector: Detection of tranches ready for settlement
- query_manager: Read side (records and summary)
- message_renderer: Seller message text
"""

from app.services.settlement.calculator import (
    CascadeShare,
    SettlementCalculator,
    SettlementComputation,
    SettlementInput,
)
from app.services.settlement.chain_provider import (
    ChainLink,
    RecruitmentChainProvider,
    SqlChainProvider,
    validate_chain,
)
from app.services.settlement.ledger import SurplusLedger
from app.services.settlement.message_renderer import render_settlement_message
from app.services.settlement.query_manager import (
    PendingSettlementInfo,
    SettlementQueryManager,
    SettlementRecord,
    SettlementSummary,
)
from app.services.settlement.trigger_detector import SweepReport, TriggerDetector
from app.services.settlement.workflow import SettlementWorkflow


__all__ = [
    # Chain
    "ChainLink",
    "RecruitmentChainProvider",
    "SqlChainProvider",
    "validate_chain",
    # Computation
    "CascadeShare",
    "SettlementCalculator",
    "SettlementComputation",
    "SettlementInput",
    # State
    "SurplusLedger",
    "SettlementWorkflow",
    "TriggerDetector",
    "SweepReport",
    # Read side
    "PendingSettlementInfo",
    "SettlementQueryManager",
    "SettlementRecord",
    "SettlementSummary",
    "render_settlement_message",
]
