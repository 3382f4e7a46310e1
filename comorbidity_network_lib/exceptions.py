"""Errors raised by the comorbidity pipeline."""


class ComorbidityError(Exception):
    """Base class for all pipeline errors."""


class CohortInputError(ComorbidityError, ValueError):
    """Input data cannot be analysed. Fatal to the whole run."""


class ZeroProbabilityMassError(CohortInputError):
    """Raw predicted probabilities of a disease sum to zero."""

    def __init__(self, disease: str):
        self.disease = disease
        super().__init__(
            f"Predicted probabilities for disease '{disease}' sum to zero; "
            f"cannot rescale to the observed count"
        )

    def __reduce__(self):
        # joblib workers send exceptions back pickled
        return (self.__class__, (self.disease,))


class ModelFitError(ComorbidityError):
    """A single disease model could not be fitted. Only that disease is excluded."""

    def __init__(self, disease: str, reason: str):
        self.disease = disease
        self.reason = reason
        super().__init__(f"Model for disease '{disease}' failed: {reason}")

    def __reduce__(self):
        return (self.__class__, (self.disease, self.reason))
