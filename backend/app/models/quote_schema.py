"""
Request / response contracts for the quote API.

Engine results are plain dataclasses; these models are the wire format and
convert from them with ``from_*`` helpers.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.services.ontology import Category, ItemFlag
from app.services.reconciliation_engine import ExternalSummary


class ExternalSummaryIn(BaseModel):
    """Summary proposed by an external source for the same quote."""
    totals: Dict[str, Optional[float]] = Field(
        default_factory=dict, description="category id -> proposed total (EUR)"
    )
    inclusions: List[str] = Field(default_factory=list)
    exclusions: List[str] = Field(default_factory=list)
    missing_checklist: List[str] = Field(default_factory=list)
    ambiguous_points: List[str] = Field(default_factory=list)

    def to_engine(self) -> ExternalSummary:
        return ExternalSummary(
            totals=dict(self.totals),
            inclusions=list(self.inclusions),
            exclusions=list(self.exclusions),
            missing_checklist=list(self.missing_checklist),
            ambiguous_points=list(self.ambiguous_points),
        )


class NormalizeRequest(BaseModel):
    lines: List[str] = Field(..., description="Cleaned text lines of one quote")
    source_label: str = Field("A", pattern="^[ABC]$")
    file_name: str = ""
    external: Optional[ExternalSummaryIn] = None


class ClassifyRequest(BaseModel):
    line: str


class ClassifyResponse(BaseModel):
    category: Category
    hits: int
    amount_eur: Optional[float] = None


class TextParseRequest(BaseModel):
    text: str


class ParseResponse(BaseModel):
    lines: List[str]


class NormalizedItemOut(BaseModel):
    id: str
    original_text: str
    normalized_text: str
    category: Category
    amount_eur: Optional[float] = None
    flags: List[ItemFlag] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)


class QuoteSummaryOut(BaseModel):
    totals: Dict[Category, float]
    grand_total: float
    inclusions: List[str] = Field(default_factory=list)
    exclusions: List[str] = Field(default_factory=list)
    missing_checklist: List[str] = Field(default_factory=list)
    ambiguous_points: List[str] = Field(default_factory=list)


class QuoteMeta(BaseModel):
    file_name: str
    parsing_notes: Optional[List[str]] = None


class ProcessedQuoteResponse(BaseModel):
    source_label: str
    items: List[NormalizedItemOut]
    summary: QuoteSummaryOut
    meta: QuoteMeta

    @classmethod
    def from_quote(cls, quote) -> "ProcessedQuoteResponse":
        """Build from a quote_pipeline.ProcessedQuote."""
        return cls.model_validate(quote.to_dict())
