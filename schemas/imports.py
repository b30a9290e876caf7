from bson import ObjectId
from enum import Enum


class LoanType(str, Enum):
    PERSONAL = "personal"
    BUSINESS = "business"
    EMERGENCY = "emergency"
    EDUCATION = "education"
    MEDICAL = "medical"
    HOME_IMPROVEMENT = "home-improvement"
    AGRICULTURE = "agriculture"
    MOTORCYCLE = "motorcycle"


__all__ = ["LoanType", "ObjectId"]
