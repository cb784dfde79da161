from typing import Optional, List, Dict, Literal
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, EmailStr, Field, model_validator

# ---------- Seed rows ----------

class UserSeed(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=80)
    last_name: str = Field(..., min_length=1, max_length=80)
    email: EmailStr
    password_hash: str = Field(..., min_length=1, max_length=255)
    phone_number: Optional[str] = Field(None, max_length=20)
    role: Literal["guest", "host", "admin"] = "guest"

class PropertySeed(BaseModel):
    host_id: int
    name: str = Field(..., min_length=1, max_length=150)
    description: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1, max_length=255)
    price_per_night: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    max_guests: int = Field(1, gt=0)
    created_at: Optional[datetime] = None

class BookingSeed(BaseModel):
    property_id: int
    user_id: int
    start_date: date
    end_date: date
    status: Literal["pending", "confirmed", "canceled", "completed"] = "pending"
    created_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

class PaymentSeed(BaseModel):
    booking_id: int
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    payment_method: Literal["credit_card", "paypal", "stripe"]
    payment_date: Optional[datetime] = None

class ReviewSeed(BaseModel):
    property_id: int
    user_id: int
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)
    created_at: Optional[datetime] = None

class MessageSeed(BaseModel):
    sender_id: int
    recipient_id: int
    message_body: str = Field(..., min_length=1)
    sent_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_participants(self):
        if self.sender_id == self.recipient_id:
            raise ValueError("sender and recipient must differ")
        return self

class SeedResult(BaseModel):
    loaded: bool
    counts: Dict[str, int]

# ---------- Workload / index advisor ----------

class QueryPatternIn(BaseModel):
    name: str = Field(..., min_length=1)
    table: str = Field(..., min_length=1)
    equality: List[str] = []
    ranges: List[str] = []
    joins: List[str] = []
    group_by: List[str] = []
    order_by: List[str] = []
    wildcard: List[str] = []
    frequency: int = Field(1, ge=1)

class ColumnStatsIn(BaseModel):
    table: str
    column: str
    rows: int = Field(..., ge=0)
    distinct: int = Field(..., ge=0)

class RecommendationRequest(BaseModel):
    patterns: List[QueryPatternIn] = Field(..., min_length=1)
    stats: List[ColumnStatsIn] = []
    include_existing: bool = True

class IndexRecommendationResponse(BaseModel):
    table: str
    columns: List[str]
    kind: Literal["single", "composite", "skip"]
    reason: str
    name: Optional[str] = None
    ddl: Optional[str] = None

    class Config:
        from_attributes = True

# ---------- Partitioning ----------

class PartitionResponse(BaseModel):
    name: str
    start: date
    end: date

    class Config:
        from_attributes = True

class PartitionPlanResponse(BaseModel):
    table: str
    column: str
    granularity: Literal["yearly", "monthly"]
    partitions: List[PartitionResponse]
    pruned: Optional[List[str]] = None
    ddl: str

# ---------- Queries / profiling ----------

class QueryInfo(BaseModel):
    name: str
    description: str
    sql: str

class QueryProfileResponse(BaseModel):
    query: str
    dialect: str
    plan: List[str]
    full_scans: List[str]
    indexes_used: List[str]
    sorts: int
    execution_ms: Optional[float] = None
    wall_ms: float

    class Config:
        from_attributes = True

# ---------- Schema analysis ----------

class NormalizationViolationResponse(BaseModel):
    table: str
    determinant: List[str]
    dependent: str
    reason: str

    class Config:
        from_attributes = True

class VariantReconciliationResponse(BaseModel):
    variant: str
    table: str
    canonical_table: str
    renames: Dict[str, str]
    missing: List[str]
    extra: List[str]
    statements: List[str]

    class Config:
        from_attributes = True
