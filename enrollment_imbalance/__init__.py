"""Class-imbalance remediation analysis for student enrollment prediction."""
from .config import ExperimentConfig, get_enrollment_config
from .experiment import ImbalanceExperiment

__all__ = ['ExperimentConfig', 'ImbalanceExperiment', 'get_enrollment_config']
