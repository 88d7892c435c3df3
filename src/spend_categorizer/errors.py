class CategorizerError(Exception):
    """Base class for categorization engine failures."""


class ModelNotTrainedError(CategorizerError):
    """Raised when the classifier is asked to predict or report metrics before training."""


class InsufficientTrainingDataError(CategorizerError):
    """Raised when the labeled history cannot support a training run."""
