from typing import Dict, List, Any, Sequence
import json
import statistics


class MetricUtils:
    """Common utilities for metric aggregation"""

    @staticmethod
    def median(values: Sequence[float]) -> float:
        """Median of repeated samples; 0 when there are none"""
        if not values:
            return 0
        # statistics.median sorts numerically
        return statistics.median(values)

    @staticmethod
    def aggregate_samples(buffers: Dict[str, List[float]]) -> Dict[str, float]:
        """Median of each metric buffer, independently"""
        return {name: MetricUtils.median(values) for name, values in buffers.items()}

    @staticmethod
    def save_metrics(metrics: Dict[str, Any], output_path):
        """Save metrics to JSON file"""
        with open(output_path, 'w') as f:
            json.dump(metrics, f, indent=2)

    @staticmethod
    def load_metrics(input_path) -> Dict[str, Any]:
        """Load metrics from JSON file"""
        with open(input_path, 'r') as f:
            return json.load(f)
