from typing import List

from telem.models.base import ApiModel
from telem.models.calculator import CalculatorResponse


class DashboardOverview(ApiModel):
    investors_count: int
    calculators_count: int
    properties_count: int
    analyses_count: int
    recent_calculators: List[CalculatorResponse]
