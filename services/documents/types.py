"""
Submission Pipeline Type Definitions

Dataclasses for the transaction record an agent submits, the layout
definitions loaded from YAML, the positioned text instructions the
assembler draws, and the run-state of one delivery attempt.

Records and layouts are immutable after construction; only the
DeliveryAttempt is mutated, and only by the orchestrator.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class AgentRole(Enum):
    """Canonical agent roles. Each one selects a layout variant."""
    SELLER_SIDE = "seller_side"
    BUYER_SIDE = "buyer_side"
    DUAL = "dual"

    @classmethod
    def normalize(cls, value: Any) -> 'AgentRole':
        """
        Collapse a free-form role string to a canonical role.

        Examples:
            "listingAgent", "LISTING_AGENT", "Listing Agent" -> SELLER_SIDE
            "buyersAgent", "buyer's agent", "BUYER-SIDE"     -> BUYER_SIDE
            "dualAgent", "DUAL AGENT"                         -> DUAL
            anything else                                    -> BUYER_SIDE
        """
        if isinstance(value, cls):
            return value
        key = re.sub(r"[^a-z]", "", str(value or "").lower())
        if key.startswith("dual"):
            return cls.DUAL
        if key.startswith("listing") or key.startswith("seller"):
            return cls.SELLER_SIDE
        return cls.BUYER_SIDE


class PartySide(Enum):
    """Which side of the deal a party is on, when tagged."""
    BUYER = "buyer"
    SELLER = "seller"

    @classmethod
    def from_tag(cls, tag: Any) -> Optional['PartySide']:
        """Read a party role tag ("BUYER", "sellers", "Seller 2"); None if untagged."""
        text = str(tag or "").upper()
        if "SELLER" in text:
            return cls.SELLER
        if "BUYER" in text:
            return cls.BUYER
        return None


class Stage(Enum):
    """Orchestrator stages, in execution order."""
    SAVE = "save"
    GENERATE = "generate"
    EMAIL = "email"
    STORE = "store"
    COMPLETE = "complete"


class AttachmentOutcome(Enum):
    """How the generated document ended up attached to the record."""
    ATTACHED = "attached"
    COMPRESSED = "compressed"
    TRUNCATED = "truncated"
    NOTE_ONLY = "note_only"
    NONE = "none"


class GovernorOutcome(Enum):
    """Result of conditioning a blob for an attachment ceiling."""
    UNCHANGED = "unchanged"
    COMPRESSED = "compressed"
    TRUNCATED = "truncated"
    NONE = "none"


class StepStatus(Enum):
    PENDING = "pending"
    LOADING = "loading"
    COMPLETE = "complete"
    ERROR = "error"


# =============================================================================
# TRANSACTION RECORD
# =============================================================================

def _text(data: Dict[str, Any], *keys: str) -> Optional[str]:
    """First non-empty value among keys, as a stripped string."""
    for key in keys:
        value = data.get(key)
        if value is None or isinstance(value, bool):
            continue
        value = str(value).strip()
        if value:
            return value
    return None


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().upper() in ("YES", "TRUE", "Y", "1")


@dataclass(frozen=True)
class Party:
    """One buyer- or seller-side participant."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    marital_status: Optional[str] = None
    role_tag: Optional[str] = None

    @property
    def side(self) -> Optional[PartySide]:
        return PartySide.from_tag(self.role_tag)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Party':
        return cls(
            name=_text(data, 'name'),
            email=_text(data, 'email'),
            phone=_text(data, 'phone'),
            address=_text(data, 'address', 'streetAddress'),
            marital_status=_text(data, 'maritalStatus'),
            role_tag=_text(data, 'type', 'role')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'maritalStatus': self.marital_status,
            'type': self.role_tag
        }


@dataclass(frozen=True)
class PropertyInfo:
    address: Optional[str] = None
    listing_id: Optional[str] = None
    sale_price: Optional[str] = None
    closing_date: Optional[str] = None
    status: Optional[str] = None
    access_type: Optional[str] = None
    lockbox_code: Optional[str] = None
    county: Optional[str] = None
    property_type: Optional[str] = None
    is_winterized: bool = False
    update_mls: bool = False
    built_before_1978: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PropertyInfo':
        return cls(
            address=_text(data, 'address'),
            listing_id=_text(data, 'mlsNumber', 'listingId'),
            sale_price=_text(data, 'salePrice'),
            closing_date=_text(data, 'closingDate'),
            status=_text(data, 'status'),
            access_type=_text(data, 'propertyAccessType'),
            lockbox_code=_text(data, 'lockboxAccessCode'),
            county=_text(data, 'county'),
            property_type=_text(data, 'propertyType'),
            is_winterized=_flag(data.get('isWinterized')),
            update_mls=_flag(data.get('updateMls')),
            built_before_1978=_flag(data.get('isBuiltBefore1978'))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'mlsNumber': self.listing_id,
            'salePrice': self.sale_price,
            'closingDate': self.closing_date,
            'status': self.status,
            'propertyAccessType': self.access_type,
            'lockboxAccessCode': self.lockbox_code,
            'county': self.county,
            'propertyType': self.property_type,
            'isWinterized': 'YES' if self.is_winterized else 'NO',
            'updateMls': 'YES' if self.update_mls else 'NO',
            'isBuiltBefore1978': 'YES' if self.built_before_1978 else 'NO'
        }


@dataclass(frozen=True)
class CommissionTerms:
    total_percentage: Optional[str] = None
    listing_agent_percentage: Optional[str] = None
    buyers_agent_percentage: Optional[str] = None
    seller_paid_amount: Optional[str] = None
    buyer_paid_amount: Optional[str] = None
    sellers_assist: Optional[str] = None
    is_referral: bool = False
    referral_party: Optional[str] = None
    referral_fee: Optional[str] = None
    broker_ein: Optional[str] = None
    coordinator_fee_paid_by: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CommissionTerms':
        sellers_assist = _text(data, 'sellersAssist')
        if not sellers_assist and _flag(data.get('hasSellersAssist')):
            sellers_assist = _text(data, 'sellersAssistAmount')
        return cls(
            total_percentage=_text(data, 'totalCommission', 'totalCommissionPercentage'),
            listing_agent_percentage=_text(data, 'listingAgentCommission', 'listingAgentPercentage'),
            buyers_agent_percentage=_text(data, 'buyersAgentCommission', 'buyersAgentPercentage'),
            seller_paid_amount=_text(data, 'sellerPaidAmount', 'brokerFeeAmount', 'brokerFee'),
            buyer_paid_amount=_text(data, 'buyerPaidAmount', 'buyerPaidCommission'),
            sellers_assist=sellers_assist,
            is_referral=_flag(data.get('isReferral')),
            referral_party=_text(data, 'referralParty'),
            referral_fee=_text(data, 'referralFee'),
            broker_ein=_text(data, 'brokerEin'),
            coordinator_fee_paid_by=_text(data, 'coordinatorFeePaidBy')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalCommissionPercentage': self.total_percentage,
            'listingAgentPercentage': self.listing_agent_percentage,
            'buyersAgentPercentage': self.buyers_agent_percentage,
            'sellerPaidAmount': self.seller_paid_amount,
            'buyerPaidAmount': self.buyer_paid_amount,
            'sellersAssist': self.sellers_assist,
            'isReferral': 'YES' if self.is_referral else 'NO',
            'referralParty': self.referral_party,
            'referralFee': self.referral_fee,
            'brokerEin': self.broker_ein,
            'coordinatorFeePaidBy': self.coordinator_fee_paid_by
        }


@dataclass(frozen=True)
class PropertyDetail:
    """HOA, municipality, attorney and home warranty extras."""
    hoa_name: Optional[str] = None
    municipality: Optional[str] = None
    attorney_name: Optional[str] = None
    first_right_name: Optional[str] = None
    warranty_company: Optional[str] = None
    warranty_cost: Optional[str] = None
    warranty_paid_by: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], warranty: Dict[str, Any] = None) -> 'PropertyDetail':
        warranty = warranty or {}
        return cls(
            hoa_name=_text(data, 'hoaName'),
            municipality=_text(data, 'municipality'),
            attorney_name=_text(data, 'attorneyName'),
            first_right_name=_text(data, 'firstRightName'),
            warranty_company=_text(warranty, 'warrantyCompany') or _text(data, 'warrantyCompany'),
            warranty_cost=_text(warranty, 'warrantyCost') or _text(data, 'warrantyCost'),
            warranty_paid_by=_text(warranty, 'warrantyPaidBy') or _text(data, 'warrantyPaidBy')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hoaName': self.hoa_name,
            'municipality': self.municipality,
            'attorneyName': self.attorney_name,
            'firstRightName': self.first_right_name,
            'warrantyCompany': self.warranty_company,
            'warrantyCost': self.warranty_cost,
            'warrantyPaidBy': self.warranty_paid_by
        }


@dataclass(frozen=True)
class TitleCompany:
    name: Optional[str] = None


@dataclass(frozen=True)
class TransactionNotes:
    special_instructions: Optional[str] = None
    urgent_issues: Optional[str] = None
    additional_notes: Optional[str] = None


@dataclass(frozen=True)
class AgentIdentity:
    name: Optional[str] = None
    role: AgentRole = AgentRole.BUYER_SIDE
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class TransactionRecord:
    """
    A validated transaction submission.

    The agent's role decides which party slots and which layout variant
    are used when the record is rendered. `record_id` is set once the
    parent record exists in the record store; re-submitting a record
    that carries one skips record creation.
    """
    agent: AgentIdentity
    property: PropertyInfo
    parties: Tuple[Party, ...] = ()
    commission: CommissionTerms = field(default_factory=CommissionTerms)
    details: PropertyDetail = field(default_factory=PropertyDetail)
    title: TitleCompany = field(default_factory=TitleCompany)
    notes: TransactionNotes = field(default_factory=TransactionNotes)
    record_id: Optional[str] = None

    def with_record_id(self, record_id: str) -> 'TransactionRecord':
        return replace(self, record_id=record_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransactionRecord':
        """
        Build a record from the submission JSON.

        Raises:
            ValueError: if the payload is not a JSON object or has no
                        agent or property section
        """
        if not isinstance(data, dict):
            raise ValueError("Transaction payload must be a JSON object")

        agent_data = data.get('agentData') or {}
        property_data = data.get('propertyData') or {}
        if not agent_data and not property_data:
            raise ValueError("Transaction payload needs agentData or propertyData")

        signature = data.get('signatureData') or {}
        agent = AgentIdentity(
            name=_text(agent_data, 'name', 'agentName') or _text(signature, 'agentName'),
            role=AgentRole.normalize(agent_data.get('role')),
            email=_text(agent_data, 'email'),
            phone=_text(agent_data, 'phone')
        )

        clients = data.get('clients') or []
        parties = tuple(Party.from_dict(c) for c in clients if isinstance(c, dict))

        details = data.get('propertyDetails') or data.get('propertyDetailsData') or {}
        title = data.get('titleData') or {}
        info = data.get('additionalInfo') or {}

        return cls(
            agent=agent,
            property=PropertyInfo.from_dict(property_data),
            parties=parties,
            commission=CommissionTerms.from_dict(data.get('commissionData') or {}),
            details=PropertyDetail.from_dict(details, data.get('warrantyData')),
            title=TitleCompany(name=_text(title, 'titleCompany')),
            notes=TransactionNotes(
                special_instructions=_text(info, 'specialInstructions'),
                urgent_issues=_text(info, 'urgentIssues'),
                additional_notes=_text(info, 'notes', 'additionalNotes')
            ),
            record_id=_text(data, 'transactionId', 'recordId')
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the submission JSON shape."""
        return {
            'agentData': {
                'name': self.agent.name,
                'role': self.agent.role.value,
                'email': self.agent.email,
                'phone': self.agent.phone
            },
            'propertyData': self.property.to_dict(),
            'clients': [p.to_dict() for p in self.parties],
            'commissionData': self.commission.to_dict(),
            'propertyDetails': self.details.to_dict(),
            'titleData': {'titleCompany': self.title.name},
            'additionalInfo': {
                'specialInstructions': self.notes.special_instructions,
                'urgentIssues': self.notes.urgent_issues,
                'notes': self.notes.additional_notes
            },
            'transactionId': self.record_id
        }


# =============================================================================
# LAYOUT DEFINITIONS
# =============================================================================

@dataclass(frozen=True)
class LayoutField:
    """
    One positioned value in a layout.

    Attributes:
        key: Stable internal identifier
        source: Source path resolved against the mapping context
        page: 0-based page index
        x, y: PDF points, bottom-left origin
        size: Font size in points
        bold: Use the bold font variant
        transform: Optional transform name (see transforms.py)
        max_width: Wrap width in points, None for a single line
        prefix: Literal text prepended to the value
        when: Optional source path that must resolve truthy
    """
    key: str
    source: str
    page: int
    x: float
    y: float
    size: float = 11.0
    bold: bool = False
    transform: Optional[str] = None
    max_width: Optional[float] = None
    prefix: str = ""
    when: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], y_offset: float = 0.0) -> 'LayoutField':
        max_width = data.get('max_width')
        return cls(
            key=data['key'],
            source=data['source'],
            page=int(data.get('page', 0)),
            x=float(data['x']),
            y=float(data['y']) + y_offset,
            size=float(data.get('size', 11)),
            bold=bool(data.get('bold', False)),
            transform=data.get('transform'),
            max_width=float(max_width) if max_width is not None else None,
            prefix=data.get('prefix', ''),
            when=data.get('when')
        )


@dataclass(frozen=True)
class LayoutVariant:
    """Per-role part of a layout: which party slots render, plus extra fields."""
    role: AgentRole
    party_slots: Tuple[str, ...]
    fields: Tuple[LayoutField, ...]


@dataclass(frozen=True)
class DocumentLayout:
    """
    A complete coordinate layout for one template, loaded from YAML.

    `party_slots` maps a slot name ("seller", "buyer") to the fields
    drawn for the party chosen for that slot; their sources are relative
    to the party (e.g. "name", "email").
    """
    schema_version: str
    slug: str
    name: str
    fields: Tuple[LayoutField, ...]
    party_slots: Dict[str, Tuple[LayoutField, ...]]
    variants: Dict[AgentRole, LayoutVariant]

    def variant_for(self, role: AgentRole) -> LayoutVariant:
        return self.variants[role]


# =============================================================================
# DOCUMENT GENERATION
# =============================================================================

@dataclass(frozen=True)
class PositionedTextInstruction:
    """
    One literal string to draw at an exact position.

    Coordinates are PDF points with a bottom-left origin on a US Letter
    page. A page index beyond the template's page count is valid; the
    assembler appends blank pages to reach it.
    """
    page: int
    x: float
    y: float
    text: str
    font_size: float = 11.0
    bold: bool = False
    max_width: Optional[float] = None

    def __post_init__(self):
        if self.page < 0:
            raise ValueError(f"Instruction page must not be negative: {self.page}")


@dataclass(frozen=True)
class ConditionedAttachment:
    """What the size governor hands back for one blob and ceiling."""
    outcome: GovernorOutcome
    data: Optional[bytes] = None
    note: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data) if self.data is not None else 0


# =============================================================================
# DELIVERY
# =============================================================================

@dataclass
class SubmissionStep:
    """One row of the progress surface shown to the agent."""
    id: str
    label: str
    status: StepStatus = StepStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'label': self.label, 'status': self.status.value}


@dataclass
class StageResult:
    stage: Stage
    ok: bool
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'stage': self.stage.value, 'ok': self.ok, 'message': self.message}


@dataclass
class PartyError:
    """A child party record the record store refused."""
    party: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {'party': self.party, 'error': self.error}


@dataclass
class DeliveryAttempt:
    """
    Mutable run-state of one submission through the orchestrator.

    Created when a submission starts, mutated in place by each stage,
    returned to the caller at the terminal state. Never persisted.
    """
    record_id: Optional[str] = None
    document_bytes: Optional[bytes] = None
    conditioned: Optional[ConditionedAttachment] = None
    email_sent: bool = False
    storage_url: Optional[str] = None
    attachment_outcome: Optional[AttachmentOutcome] = None
    stage: Stage = Stage.SAVE
    error: Optional[str] = None
    error_type: Optional[str] = None
    note: Optional[str] = None
    outcomes: List[StageResult] = field(default_factory=list)
    party_errors: List[PartyError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    steps: List[SubmissionStep] = field(default_factory=list)
    current_step: int = 0

    @property
    def succeeded(self) -> bool:
        return self.stage is Stage.COMPLETE and self.error is None

    def record(self, stage: Stage, ok: bool, message: str = None) -> None:
        self.outcomes.append(StageResult(stage=stage, ok=ok, message=message))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.succeeded,
            'recordId': self.record_id,
            'stage': self.stage.value,
            'error': self.error,
            'errorType': self.error_type,
            'emailSent': self.email_sent,
            'storageUrl': self.storage_url,
            'attachmentOutcome': self.attachment_outcome.value if self.attachment_outcome else None,
            'note': self.note,
            'documentSize': len(self.document_bytes) if self.document_bytes else 0,
            'outcomes': [o.to_dict() for o in self.outcomes],
            'partyErrors': [e.to_dict() for e in self.party_errors],
            'progress': {
                'steps': [s.to_dict() for s in self.steps],
                'currentStep': self.current_step,
                'error': self.error,
                'warnings': list(self.warnings)
            }
        }
