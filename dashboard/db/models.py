import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Date, Boolean, Float,
    ForeignKey, JSON, Uuid, Index,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import relationship, DeclarativeBase


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


UUID = Uuid(as_uuid=False)
JSONType = JSON().with_variant(JSONB(), "postgresql")
TextArray = ARRAY(Text).with_variant(JSON(), "sqlite")


# ─── ENUMS ───────────────────────────────────────────────
# Stored as plain text: the hosted schema uses text columns with CHECK constraints.

class UserRole(str, enum.Enum):
    CLIENT = "client"
    ADMIN = "admin"
    CONTRACTOR = "contractor"
    INSPECTOR = "inspector"


class ProjectStatus(str, enum.Enum):
    PLANNING = "planning"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"


class MilestoneStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"
    ON_HOLD = "on_hold"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentCategory(str, enum.Enum):
    MILESTONE = "milestone"
    MATERIALS = "materials"
    LABOR = "labor"
    PERMITS = "permits"
    OTHER = "other"


class ContractorStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    BLACKLISTED = "blacklisted"
    PENDING_APPROVAL = "pending_approval"


class ContractorSource(str, enum.Enum):
    USER_ADDED = "user_added"
    KORABUILD_VERIFIED = "korabuild_verified"
    PLATFORM_RECOMMENDED = "platform_recommended"
    REFERRAL = "referral"


class ContractStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    COMPLETED = "completed"
    TERMINATED = "terminated"
    SUSPENDED = "suspended"


class OnSiteStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    ON_SITE = "on_site"
    OFF_SITE = "off_site"
    COMPLETED = "completed"


class DeliveryStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_TRANSIT = "in_transit"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    PENDING_APPROVAL = "pending_approval"
    CONFIRMED = "confirmed"
    IN_TRANSIT = "in_transit"
    PARTIALLY_DELIVERED = "partially_delivered"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class RequestStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    REVIEWING = "reviewing"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class RequestPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PriorityLevel(str, enum.Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class AdminNotificationCategory(str, enum.Enum):
    FINANCIAL = "financial"
    OPERATIONAL = "operational"
    COMPLIANCE = "compliance"
    SAFETY = "safety"
    QUALITY = "quality"
    COMMUNICATION = "communication"
    SYSTEM = "system"


class AdminNotificationPriority(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ─── MODELS ──────────────────────────────────────────────

class User(Base):
    __tablename__ = "users"

    id = Column(UUID, primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50))
    role = Column(String(20), nullable=False, default=UserRole.CLIENT.value)
    profile_photo_url = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    projects = relationship("Project", back_populates="client")


class Project(Base):
    __tablename__ = "projects"

    id = Column(UUID, primary_key=True, default=new_id)
    client_id = Column(UUID, ForeignKey("users.id"), nullable=False)
    project_name = Column(String(500), nullable=False)
    project_address = Column(Text, nullable=False)
    contract_value = Column(Float, nullable=False, default=0)
    start_date = Column(Date, nullable=False)
    expected_completion = Column(Date, nullable=False)
    actual_completion = Column(Date)
    current_phase = Column(String(100), default="Planning")
    progress_percentage = Column(Integer, default=0)
    status = Column(String(20), nullable=False, default=ProjectStatus.PLANNING.value)
    description = Column(Text)
    project_photo_urls = Column(TextArray)
    weather_location = Column(String(255))
    total_milestones = Column(Integer, default=0)
    completed_milestones = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    client = relationship("User", back_populates="projects")
    milestones = relationship("ProjectMilestone", back_populates="project",
                              order_by="ProjectMilestone.order_index")
    contractors = relationship("ProjectContractor", back_populates="project")
    payments = relationship("Payment", back_populates="project")
    financials = relationship("ProjectFinancials", back_populates="project")


class ProjectMilestone(Base):
    __tablename__ = "project_milestones"

    id = Column(UUID, primary_key=True, default=new_id)
    project_id = Column(UUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    milestone_name = Column(String(255), nullable=False)
    description = Column(Text)
    phase_category = Column(String(50))
    planned_start = Column(Date)
    planned_end = Column(Date)
    actual_start = Column(Date)
    actual_end = Column(Date)
    status = Column(String(20), default=MilestoneStatus.NOT_STARTED.value)
    progress_percentage = Column(Integer, default=0)
    order_index = Column(Integer, default=0)
    estimated_cost = Column(Float)
    actual_cost = Column(Float)
    responsible_contractor = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="milestones")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(UUID, primary_key=True, default=new_id)
    project_id = Column(UUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    milestone_id = Column(UUID, ForeignKey("project_milestones.id"), nullable=True)
    amount = Column(Float, nullable=False)
    payment_date = Column(Date)
    payment_method = Column(String(50))
    reference = Column(String(255))
    description = Column(Text)
    receipt_url = Column(Text)
    status = Column(String(20), default=PaymentStatus.PENDING.value)
    payment_category = Column(String(20), default=PaymentCategory.OTHER.value)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="payments")
    milestone = relationship("ProjectMilestone")

    __table_args__ = (
        Index("ix_payments_project_status", "project_id", "status"),
    )


class ProjectFinancials(Base):
    __tablename__ = "project_financials"

    id = Column(UUID, primary_key=True, default=new_id)
    project_id = Column(UUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    cash_received = Column(Float, default=0)
    amount_used = Column(Float, default=0)
    amount_remaining = Column(Float, default=0)
    total_payments_calculated = Column(Float, default=0)
    snapshot_date = Column(Date)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="financials")


class CreditAccount(Base):
    __tablename__ = "enhanced_credit_accounts"

    id = Column(UUID, primary_key=True, default=new_id)
    project_id = Column(UUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True)
    milestone_id = Column(UUID, ForeignKey("project_milestones.id"), nullable=True)
    payment_amount = Column(Float, default=0)
    payment_sequence = Column(Integer, default=1)
    total_payments = Column(Integer, default=1)
    total_amount = Column(Float, default=0)
    next_payment_date = Column(Date)
    last_payment_date = Column(Date)
    credit_terms = Column(String(100))
    credit_status = Column(String(20), default="active")
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    milestone = relationship("ProjectMilestone")


class Contractor(Base):
    __tablename__ = "contractors"

    id = Column(UUID, primary_key=True, default=new_id)
    contractor_name = Column(String(255), nullable=False)
    company_name = Column(String(255), nullable=False)
    primary_contact_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    trade_specialization = Column(String(100), nullable=False)
    secondary_specializations = Column(TextArray)
    hourly_rate = Column(Float)
    daily_rate = Column(Float)
    overall_rating = Column(Float, default=0)
    contractor_source = Column(String(30), default=ContractorSource.USER_ADDED.value)
    verification_status = Column(String(20), default="pending")
    status = Column(String(20), default=ContractorStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    assignments = relationship("ProjectContractor", back_populates="contractor")


class ProjectContractor(Base):
    __tablename__ = "project_contractors"

    id = Column(UUID, primary_key=True, default=new_id)
    project_id = Column(UUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    contractor_id = Column(UUID, ForeignKey("contractors.id", ondelete="CASCADE"), nullable=False)
    contract_type = Column(String(50), default="service_contract")
    contract_value = Column(Float, default=0)
    scope_of_work = Column(Text, nullable=False)
    start_date = Column(Date, nullable=False)
    planned_end_date = Column(Date)
    payment_terms = Column(String(100), default="30 days")
    contract_status = Column(String(30), default=ContractStatus.PENDING_APPROVAL.value)
    on_site_status = Column(String(20), default=OnSiteStatus.SCHEDULED.value)
    work_completion_percentage = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="contractors")
    contractor = relationship("Contractor", back_populates="assignments")


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(UUID, primary_key=True, default=new_id)
    supplier_name = Column(String(255), nullable=False)
    contact_person = Column(String(255))
    email = Column(String(255))
    phone = Column(String(50))
    specialty = Column(String(100))
    rating = Column(Float, default=0)
    status = Column(String(20), default="active")


class ProjectOrder(Base):
    __tablename__ = "project_orders"

    id = Column(UUID, primary_key=True, default=new_id)
    project_id = Column(UUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    supplier_id = Column(UUID, ForeignKey("suppliers.id"), nullable=True)
    order_number = Column(String(50), nullable=False)
    order_date = Column(Date)
    required_date = Column(Date)
    expected_delivery_date = Column(Date)
    priority = Column(String(20), default="medium")
    subtotal = Column(Float, default=0)
    tax_amount = Column(Float, default=0)
    total_amount = Column(Float, default=0)
    currency = Column(String(3), default="ZAR")
    payment_status = Column(String(20), default="pending")
    delivery_address = Column(Text)
    delivery_instructions = Column(Text)
    notes = Column(Text)
    status = Column(String(30), default=OrderStatus.DRAFT.value)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    supplier = relationship("Supplier")
    deliveries = relationship("Delivery", back_populates="order")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan",
                         order_by="OrderItem.line_number")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(UUID, primary_key=True, default=new_id)
    order_id = Column(UUID, ForeignKey("project_orders.id", ondelete="CASCADE"), nullable=False)
    line_number = Column(Integer, default=1)
    item_description = Column(Text, nullable=False, default="")
    quantity_ordered = Column(Float, default=0)
    quantity_delivered = Column(Float, default=0)
    unit_of_measure = Column(String(30), default="pieces")
    unit_cost = Column(Float, default=0)
    delivery_status = Column(String(20), default="pending")
    specifications = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    order = relationship("ProjectOrder", back_populates="items")


class InventoryItem(Base):
    """Company-wide stock, not tied to a project."""
    __tablename__ = "inventory_items"

    id = Column(UUID, primary_key=True, default=new_id)
    item_code = Column(String(50), nullable=False)
    item_name = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(100))
    subcategory = Column(String(100))
    unit_of_measure = Column(String(30), default="pieces")
    current_stock = Column(Float, default=0)
    min_stock_level = Column(Float, default=0)
    standard_cost = Column(Float)
    last_cost = Column(Float)
    supplier_id = Column(UUID, ForeignKey("suppliers.id"), nullable=True)
    is_active = Column(Boolean, default=True)

    supplier = relationship("Supplier")


class Delivery(Base):
    __tablename__ = "deliveries"

    id = Column(UUID, primary_key=True, default=new_id)
    order_id = Column(UUID, ForeignKey("project_orders.id", ondelete="CASCADE"), nullable=False)
    delivery_number = Column(String(50), nullable=False, unique=True)
    delivery_date = Column(Date)
    scheduled_time = Column(String(20))
    delivery_status = Column(String(20), default=DeliveryStatus.SCHEDULED.value)
    driver_name = Column(String(255))
    driver_phone = Column(String(50))
    vehicle_info = Column(String(255))
    delivery_method = Column(String(50))
    received_by_name = Column(String(255))
    special_handling_notes = Column(Text)
    notes = Column(Text)
    delivery_photos = Column(TextArray)
    actual_arrival_time = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    order = relationship("ProjectOrder", back_populates="deliveries")
    items = relationship("DeliveryItem", back_populates="delivery", cascade="all, delete-orphan")


class DeliveryItem(Base):
    __tablename__ = "delivery_items"

    id = Column(UUID, primary_key=True, default=new_id)
    delivery_id = Column(UUID, ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False)
    order_item_id = Column(UUID, nullable=True)
    quantity_delivered = Column(Float, default=0)
    quantity_accepted = Column(Float, default=0)
    quantity_rejected = Column(Float, default=0)
    condition_on_arrival = Column(String(20), default="good")
    quality_check_passed = Column(Boolean, default=True)
    quality_notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    delivery = relationship("Delivery", back_populates="items")


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(UUID, primary_key=True, default=new_id)
    project_id = Column(UUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    conversation_name = Column(String(255))
    participants = Column(TextArray)
    is_archived = Column(Boolean, default=False)
    priority_level = Column(String(20), default="medium")
    last_message_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    project = relationship("Project")
    messages = relationship("Message", back_populates="conversation",
                            order_by="Message.created_at")


class Message(Base):
    __tablename__ = "messages"

    id = Column(UUID, primary_key=True, default=new_id)
    conversation_id = Column(UUID, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(UUID, ForeignKey("users.id"), nullable=True)
    message_text = Column(Text, nullable=False)
    message_type = Column(String(20), default="text")
    attachment_urls = Column(TextArray)
    reply_to_id = Column(UUID, nullable=True)
    is_edited = Column(Boolean, default=False)
    edited_at = Column(DateTime(timezone=True))
    is_pinned = Column(Boolean, default=False)
    read_by = Column(JSONType, default=dict)
    reactions = Column(JSONType, default=dict)
    meta = Column("metadata", JSONType, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User")


class Notification(Base):
    """Platform notifications, mostly written by database triggers."""
    __tablename__ = "notifications"

    id = Column(UUID, primary_key=True, default=new_id)
    user_id = Column(UUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    project_id = Column(UUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    conversation_id = Column(UUID, nullable=True)
    notification_type = Column(String(50), nullable=False, default="general")
    title = Column(String(500), nullable=False)
    message = Column(Text)
    entity_type = Column(String(50))
    entity_id = Column(UUID, nullable=True)
    priority_level = Column(String(20), default=PriorityLevel.NORMAL.value)
    action_url = Column(Text)
    meta = Column("metadata", JSONType, default=dict)
    is_read = Column(Boolean, default=False)
    read_at = Column(DateTime(timezone=True))
    is_pushed = Column(Boolean, default=False)
    is_sent = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )


class AdminNotification(Base):
    __tablename__ = "admin_notifications"

    id = Column(UUID, primary_key=True, default=new_id)
    type = Column(String(50), nullable=False)
    category = Column(String(30), nullable=False)
    priority = Column(String(20), nullable=False, default=AdminNotificationPriority.MEDIUM.value)
    title = Column(String(500), nullable=False)
    message = Column(Text, nullable=False)
    action_required = Column(Boolean, default=False)
    action_type = Column(String(50))

    entity_type = Column(String(30), nullable=False)
    entity_id = Column(UUID, nullable=True)
    project_id = Column(UUID, nullable=True)
    user_id = Column(UUID, nullable=True)

    is_read = Column(Boolean, default=False)
    is_dismissed = Column(Boolean, default=False)
    is_acknowledged = Column(Boolean, default=False)

    assigned_to_admin = Column(UUID, nullable=True)
    read_at = Column(DateTime(timezone=True))
    read_by_admin = Column(UUID, nullable=True)
    acknowledged_at = Column(DateTime(timezone=True))
    dismissed_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)
    expires_at = Column(DateTime(timezone=True))

    meta = Column("metadata", JSONType, default=dict)


class ServiceRequest(Base):
    """Client service and material requests raised from the mobile app."""
    __tablename__ = "requests"

    id = Column(UUID, primary_key=True, default=new_id)
    # the hosted table has no foreign keys on these
    project_id = Column(UUID, nullable=True)
    client_id = Column(UUID, nullable=True)
    request_type = Column(String(50), nullable=False)
    category = Column(String(30))
    subcategory = Column(String(50))
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    address = Column(Text)
    plan_urls = Column(TextArray)
    priority = Column(String(20), default=RequestPriority.MEDIUM.value)
    status = Column(String(20), default=RequestStatus.SUBMITTED.value)
    submitted_date = Column(DateTime(timezone=True), default=utcnow)
    response_date = Column(DateTime(timezone=True))
    admin_response = Column(Text)
    admin_notes = Column(Text)
    estimated_cost = Column(Float)
    assigned_to = Column(UUID, nullable=True)
    request_data = Column(JSONType, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
