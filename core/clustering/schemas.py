"""
Published data shapes for clustering input and output.

These are the structures handed to persistence and presentation
collaborators, so they stay JSON-serializable (`model_dump(mode="json")`).
Internal numeric results that carry numpy arrays live next to the code that
produces them (PCAResult, KMeansResult, CoarseGrouping).
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError

StatisticalType = Literal[
    "positive_consensus",
    "negative_consensus",
    "divisive",
    "bridge",
    "normal",
]

CoalitionType = Literal[
    "full_consensus",
    "partial_consensus",
    "split_decision",
    "bridge",
    "divisive",
    "normal",
]

CONSENSUS_TYPES = frozenset(
    {"positive_consensus", "negative_consensus", "full_consensus"}
)


class VoteRecord(BaseModel):
    user_id: str
    statement_id: str
    value: Literal[-1, 0, 1] = Field(
        description="1 = agree, -1 = disagree, 0 = pass"
    )


class StatementInfo(BaseModel):
    statement_id: str
    created_at: datetime
    text: Optional[str] = None


class VoteCounts(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    agree: int = 0
    disagree: int = 0
    pass_count: int = Field(0, alias="pass")

    @property
    def total(self):
        return self.agree + self.disagree + self.pass_count


class GroupAgreement(BaseModel):
    group_id: int
    agreement_score: float = Field(
        description="Normalized agreement in [0, 1]: ((agree - disagree) / total + 1) / 2"
    )
    voter_count: int = Field(description="agree + disagree (passes excluded)")
    agree_count: int = 0
    disagree_count: int = 0
    pass_count: int = 0

    @computed_field
    @property
    def agreement_percentage(self) -> float:
        """Signed percentage in [-100, 100] used by the coalition view and heatmaps."""
        return (self.agreement_score - 0.5) * 200


class CoalitionPattern(BaseModel):
    description: str
    agreeing_groups: list[int] = Field(default_factory=list)
    disagreeing_groups: list[int] = Field(default_factory=list)
    neutral_groups: list[int] = Field(default_factory=list)


class StatementClassification(BaseModel):
    statement_id: str
    strategy: str
    type: str
    group_agreements: dict[int, float] = Field(default_factory=dict)
    average_agreement: float
    standard_deviation: float
    bridge_score: Optional[float] = None
    connects_groups: Optional[list[int]] = None
    coalition_pattern: Optional[CoalitionPattern] = None


class WeightComponents(BaseModel):
    predictiveness: float = 0.0
    consensus_potential: float = 0.0
    recency_boost: float
    pass_rate_penalty: float
    vote_count_boost: Optional[float] = None
    combined_weight: float
    mode: Literal["clustering", "cold_start"]


class UserPosition(BaseModel):
    user_id: str
    pc1: float
    pc2: float
    fine_cluster_id: int
    coarse_group_id: int


class CoarseGroup(BaseModel):
    group_id: int
    label: str
    centroid: list[float]
    fine_cluster_ids: list[int] = Field(default_factory=list)
    user_count: int = 0
    hull: list[list[float]] = Field(default_factory=list)


class PairwiseAlignment(BaseModel):
    group_ids: tuple[int, int]
    group_labels: tuple[str, str]
    agreement_count: int
    disagreement_count: int
    neutral_count: int
    alignment_percentage: int


class CoalitionAnalysis(BaseModel):
    pairwise_alignment: list[PairwiseAlignment] = Field(default_factory=list)
    strongest_coalitions: list[PairwiseAlignment] = Field(default_factory=list)


class PCASnapshot(BaseModel):
    """The PCA basis kept for incremental projection of new voters."""

    components: list[list[float]]
    variance_explained: list[float]
    total_variance_explained: float
    mean_vector: list[float]
    statement_means: list[float]


class ClusteringMetadata(BaseModel):
    total_users: int
    total_statements: int
    num_fine_clusters: int
    num_coarse_groups: int
    silhouette_score: float
    coarse_silhouette_score: float
    total_variance_explained: float
    quality_tier: Literal["high", "medium", "low"]
    consensus_level: Literal["high", "medium", "low"]
    computation_time: float = 0.0


class ClusteringResult(BaseModel):
    poll_id: str
    computed_at: datetime
    version: int = 1
    metadata: ClusteringMetadata
    pca: PCASnapshot
    statement_ids: list[str]
    fine_centroids: list[list[float]]
    fine_to_coarse: dict[int, int]
    coarse_groups: list[CoarseGroup]
    user_positions: list[UserPosition]
    # Per statement: agree/disagree/pass counts of every group that voted
    group_agreements: dict[str, list[GroupAgreement]] = Field(default_factory=dict)
    classifications: list[StatementClassification] = Field(default_factory=list)
    coalition_classifications: list[StatementClassification] = Field(
        default_factory=list
    )
    coalition_analysis: Optional[CoalitionAnalysis] = None
    weights: dict[str, WeightComponents] = Field(default_factory=dict)

    def position_for(self, user_id):
        for position in self.user_positions:
            if position.user_id == user_id:
                return position
        return None


def parse_records(model, items):
    """
    Validate dicts (or model instances) into `model` instances.

    Raises:
        ValidationError: an item does not match the model
    """
    records = []
    for item in items:
        if isinstance(item, model):
            records.append(item)
            continue
        try:
            records.append(model.model_validate(item))
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {model.__name__}: {e.errors()[0]['msg']}",
                {"input": item},
            ) from e
    return records
