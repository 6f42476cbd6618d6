from typing import Optional


class PipelineError(Exception):
    """Base class for errors raised by job handlers."""


class NotFoundError(PipelineError):
    def __init__(self, entity: str, entity_id: Optional[str] = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        if entity_id:
            super().__init__(f"{entity} not found: {entity_id}")
        else:
            super().__init__(f"{entity} ID is required")


class SimilarityRejectedError(PipelineError):
    def __init__(
        self,
        similarity: float,
        similar_script_id: Optional[str] = None,
        similar_script_title: Optional[str] = None,
    ) -> None:
        self.similarity = similarity
        self.similar_script_id = similar_script_id
        self.similar_script_title = similar_script_title
        percent = round(similarity * 100)
        super().__init__(
            f"Content too similar ({percent}%) to existing script"
            f" \"{similar_script_title or 'Untitled'}\". Try a different angle or topic."
        )


class ProviderError(PipelineError):
    def __init__(self, provider: str, cause: BaseException) -> None:
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider} failed: {cause}")
