from fastapi import APIRouter, Depends

from core.risk_classifier import RiskClassifier
from core.services import get_classifier
from schemas.classification import ClassificationResult, ClassifyRequest

router = APIRouter(tags=["classify"])


@router.post("/classify-risk", response_model=ClassificationResult)
async def classify_risk(
    request: ClassifyRequest,
    classifier: RiskClassifier = Depends(get_classifier),
) -> ClassificationResult:
    """
    Classify accident risk from speed, location and time of day.
    Always answers: when the model is unavailable the rule-based fallback is
    returned with source="fallback".
    """
    return await classifier.classify(request)
