"""
Default score deltas keyed by activity type and task size
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Tuple, Union

import yaml

from backend.models.persona_activity import ActivityType, TaskSize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringRule:
    activity_type: ActivityType
    task_size: TaskSize
    professionalism_points: float
    quality_points: float
    description: str = ""


class ScoringRuleBook:
    """Lookup table of ScoringRules; unknown combinations score zero"""

    def __init__(self, rules: Dict[Tuple[ActivityType, TaskSize], ScoringRule]):
        self._rules = dict(rules)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'ScoringRuleBook':
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> 'ScoringRuleBook':
        rules = {}
        for activity_name, sizes in (data.get('rules') or {}).items():
            activity_type = ActivityType(activity_name)
            for size_name, points in (sizes or {}).items():
                task_size = TaskSize(size_name)
                rules[(activity_type, task_size)] = ScoringRule(
                    activity_type=activity_type,
                    task_size=task_size,
                    professionalism_points=float(points.get('professionalism', 0.0)),
                    quality_points=float(points.get('quality', 0.0)),
                    description=points.get('description', '')
                )
        logger.info(f"Loaded {len(rules)} scoring rules")
        return cls(rules)

    def deltas(self, activity_type: ActivityType, task_size: TaskSize = TaskSize.SMALL) -> Tuple[float, float]:
        """(professionalism, quality) points for an activity"""
        rule = self._rules.get((ActivityType(activity_type), TaskSize(task_size)))
        if rule is None:
            return 0.0, 0.0
        return rule.professionalism_points, rule.quality_points

    def __len__(self) -> int:
        return len(self._rules)
