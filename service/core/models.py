from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator


def _zero_if_missing(v: Any) -> Any:
    if v is None or v == "":
        return 0
    return v


# Numeric blocks are always present; absent figures are 0 ("no value").
Amount = Annotated[float, BeforeValidator(_zero_if_missing)]


class _BackendModel(BaseModel):
    """Immutable document shape using the backend's PascalCase field names as aliases."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True)


class RecordsVariances(_BackendModel):
    outstanding: Amount = Field(default=0, alias="Outstanding")
    exceptions: Amount = Field(default=0, alias="Exceptions")


class SettlementVariances(_BackendModel):
    awaiting_settlement: Amount = Field(default=0, alias="AwaitingSettlement")
    exceptions: Amount = Field(default=0, alias="Exceptions")


class RecordsVerification(_BackendModel):
    """Recorded vs verified figures for a tree node."""
    recorded: Amount = Field(default=0, alias="Recorded")
    verified: Amount = Field(default=0, alias="Verified")
    current_day_variances: RecordsVariances = Field(default_factory=RecordsVariances, alias="CurrentDayVariances")
    cumulative_variances: RecordsVariances = Field(default_factory=RecordsVariances, alias="CumulativeVariances")

    @field_validator("current_day_variances", "cumulative_variances", mode="before")
    def _default_variances(cls, v: Any) -> Any:
        return {} if v is None else v


class SettlementVerification(_BackendModel):
    """Claimed vs settled figures for a tree node."""
    claimed: Amount = Field(default=0, alias="Claimed")
    settled: Amount = Field(default=0, alias="Settled")
    current_day_variances: SettlementVariances = Field(default_factory=SettlementVariances, alias="CurrentDayVariances")
    cumulative_variances: SettlementVariances = Field(default_factory=SettlementVariances, alias="CumulativeVariances")

    @field_validator("current_day_variances", "cumulative_variances", mode="before")
    def _default_variances(cls, v: Any) -> Any:
        return {} if v is None else v


class TreeNode(_BackendModel):
    """One level of the reconciliation hierarchy (topic, brand, driver, terminal, ...).

    ``tag`` is open-ended and driven by backend data. ``children`` is owned by the
    node and is empty for leaves; nodes never point back at their parent (see
    ``core.tree_index.TreeIndex`` for upward navigation).
    """
    id: str = Field(alias="Id")
    tag: str = Field(default="", alias="NodeTag")
    label: str = Field(default="", alias="NodeLabel")
    records_verification: RecordsVerification = Field(default_factory=RecordsVerification, alias="RecordsVerification")
    settlement_verification: SettlementVerification = Field(default_factory=SettlementVerification, alias="SettlementVerification")
    children: tuple["TreeNode", ...] = Field(default=(), alias="ChildNodes")

    @field_validator("records_verification", "settlement_verification", mode="before")
    def _default_block(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("children", mode="before")
    def _default_children(cls, v: Any) -> Any:
        return () if v is None else v

    @property
    def has_children(self) -> bool:
        return len(self.children) > 0


TreeNode.model_rebuild()


class DashboardDocument(_BackendModel):
    """Top-level tree document for one area/outlet/business day."""
    area_id: Optional[int] = Field(default=None, alias="AreaId")
    area_code: str = Field(default="", alias="AreaCode")
    area_name: str = Field(default="", alias="AreaName")
    outlet_id: Optional[int] = Field(default=None, alias="OutletId")
    outlet_code: str = Field(default="", alias="OutletCode")
    outlet_name: str = Field(default="", alias="OutletName")
    business_day: str = Field(default="", alias="BusinessDay")
    child_nodes: tuple[TreeNode, ...] = Field(default=(), alias="ChildNodes")

    @field_validator("child_nodes", mode="before")
    def _default_children(cls, v: Any) -> Any:
        return () if v is None else v


# region Metadata documents
class FilterValue(_BackendModel):
    code: str = Field(alias="Code")
    label: str = Field(default="", alias="Label")


class Filter(_BackendModel):
    tag: str = Field(alias="Tag")
    label: str = Field(default="", alias="Label")
    values: tuple[FilterValue, ...] = Field(default=(), alias="Values")

    @field_validator("values", mode="before")
    def _default_values(cls, v: Any) -> Any:
        return () if v is None else v


class Topic(_BackendModel):
    tag: str = Field(alias="Tag")
    label: str = Field(default="", alias="Label")
    available_filter_tags: tuple[str, ...] = Field(default=(), alias="AvailableFilterTags")
    default_filter_hierarchy: tuple[str, ...] = Field(default=(), alias="DefaultFilterHierarchy")


class FiltersDocument(_BackendModel):
    filters: tuple[Filter, ...] = Field(default=(), alias="Filters")
    topics: tuple[Topic, ...] = Field(default=(), alias="Topics")

    @field_validator("filters", "topics", mode="before")
    def _default_lists(cls, v: Any) -> Any:
        return () if v is None else v


# endregion


# region Drill-down documents
class ColumnProperty(_BackendModel):
    """Backend-declared dynamic column resolved against each transaction at render time."""
    accessor: str = Field(alias="ColumnAccessor")
    label: str = Field(default="", alias="ColumnLabel")
    order: int = Field(default=0, alias="ColumnOrder")
    info: Optional[str] = Field(default=None, alias="ColumnInfo")
    is_list: bool = Field(default=False, alias="IsList")


class TransactionAttribute(_BackendModel):
    key: str = Field(alias="Key")
    value: Optional[str] = Field(default=None, alias="Value")


class TransactionCharges(_BackendModel):
    contractual_fees_amount: Amount = Field(default=0, alias="ContractualFeesAmount")
    contractual_vat_amount: Amount = Field(default=0, alias="ContractualVATAmount")
    applied_fees_amount: Amount = Field(default=0, alias="AppliedFeesAmount")
    applied_vat_amount: Amount = Field(default=0, alias="AppliedVATAmount")
    applied_charges_amount: Amount = Field(default=0, alias="AppliedChargesAmount")
    charges_variance: Amount = Field(default=0, alias="ChargesVariance")
    charges_reconciliation_status_tag: str = Field(default="", alias="ChargesReconciliationStatusTag")
    charges_posting_status_tag: str = Field(default="", alias="ChargesPostingStatusTag")
    postings_amount: Amount = Field(default=0, alias="PostingsAmount")
    postings_batch_amount: Amount = Field(default=0, alias="PostingsBatchAmount")
    postings_variance: Amount = Field(default=0, alias="PostingsVariance")
    batch_reconciliation_reference: str = Field(default="", alias="BatchReconciliationReference")
    batch_reconciliation_date: str = Field(default="", alias="BatchReconciliationDate")
    blended_charges_status_tag: str = Field(default="", alias="BlendedChargesStatusTag")
    blended_charges_status_name: Optional[str] = Field(default=None, alias="BlendedChargesStatusName")
    charge_mismatch_names: Optional[str] = Field(default=None, alias="ChargeMismatchNames")


class Transaction(_BackendModel):
    """Drill-down leaf record.

    Unknown fields are kept (``extra="allow"``) so backend-declared dynamic
    columns can be resolved by their accessor name.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True, extra="allow")

    reference: str = Field(alias="TransactionReference")
    transaction_date: str = Field(default="", alias="TransactionDate")
    business_day: str = Field(default="", alias="BusinessDay")
    payment_method_tag: str = Field(default="", alias="PaymentMethodTag")
    payment_method_name: str = Field(default="", alias="PaymentMethodName")
    terminal_code: str = Field(default="", alias="TransactionTerminalCode")
    brand: str = Field(default="", alias="Brand")
    customer: str = Field(default="", alias="Customer")
    attributes: tuple[TransactionAttribute, ...] = Field(default=(), alias="Attributes")
    currency: str = Field(default="", alias="TransactionCurrency")
    amount: Amount = Field(default=0, alias="TransactionAmount")
    acquirer_amount: Amount = Field(default=0, alias="AcquirerTransactionAmount")
    transaction_variance: Amount = Field(default=0, alias="TransactionVariance")
    in_transit_due_date: str = Field(default="", alias="InTransitDueDate")
    is_in_transit_overdue: bool = Field(default=False, alias="IsInTransitOverdue")
    reconciliation_status_tag: str = Field(default="", alias="ReconciliationStatusTag")
    settlement_status_tag: str = Field(default="", alias="SettlementStatusTag")
    batch_transactions_amount: Amount = Field(default=0, alias="BatchTransactionsAmount")
    settlement_batch_amount: Amount = Field(default=0, alias="SettlementBatchAmount")
    settlement_variance: Amount = Field(default=0, alias="SettlementVariance")
    batch_reconciliation_reference: str = Field(default="", alias="BatchReconciliationReference")
    batch_reconciliation_date: str = Field(default="", alias="BatchReconciliationDate")
    blended_settlement_status_tag: str = Field(default="", alias="BlendedSettlementStatusTag")
    blended_settlement_status_name: Optional[str] = Field(default=None, alias="BlendedSettlementStatusName")
    mismatch_names: Optional[str] = Field(default=None, alias="MismatchNames")
    charges: TransactionCharges = Field(default_factory=TransactionCharges, alias="Charges")

    @field_validator("attributes", mode="before")
    def _default_attributes(cls, v: Any) -> Any:
        return () if v is None else v

    @field_validator("charges", mode="before")
    def _default_charges(cls, v: Any) -> Any:
        return {} if v is None else v


class TransactionPage(_BackendModel):
    transactions: tuple[Transaction, ...] = Field(default=(), alias="Transactions")
    column_properties: tuple[ColumnProperty, ...] = Field(default=(), alias="ColumnProperties")

    @field_validator("transactions", "column_properties", mode="before")
    def _default_lists(cls, v: Any) -> Any:
        return () if v is None else v


# endregion


class CashPositionItem(BaseModel):
    """One category row of the cash position report (camelCase static JSON)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True)

    id: str
    category: str = ""
    inflows: Optional[float] = None
    outflows: Optional[float] = None
    book_variance: Optional[float] = Field(default=None, alias="bookVariance")
    bank_deposit: Optional[float] = Field(default=None, alias="bankDeposit")
    bank_verification: Optional[float] = Field(default=None, alias="bankVerification")
    bank_variance: Optional[float] = Field(default=None, alias="bankVariance")
    children: tuple["CashPositionItem", ...] = ()

    @field_validator("children", mode="before")
    def _default_children(cls, v: Any) -> Any:
        return () if v is None else v


CashPositionItem.model_rebuild()
