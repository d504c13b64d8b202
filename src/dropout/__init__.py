# ABOUTME: Drop-off prediction over a course's ordered lecture completion rates.
# ABOUTME: Exposes smoothing, polynomial regression and the prediction service.

from .predictor import DropoutBatchResult, DropoutService
from .regression import fit, predict
from .smoothing import moving_average

__all__ = ["DropoutBatchResult", "DropoutService", "fit", "moving_average", "predict"]
