class InferenceRouterError(Exception):
    """Base error for the inference router and its collaborators."""


class GenerativeAIError(InferenceRouterError):
    """The generative-AI backend failed or returned something unusable."""


class PersistenceError(InferenceRouterError):
    """A persistence collection call failed."""


class ActivationError(InferenceRouterError):
    """An activation request was refused (wrong mode, no local models, ...)."""


class ModelNotFoundError(InferenceRouterError):
    def __init__(self, model_id: str):
        super().__init__(f"Model not found: {model_id}")
        self.model_id = model_id
