"""Per-run workflow options."""

from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from buzzcraft.state.exceptions import ValidationError


class WorkflowOptions(BaseModel):
    """
    Options accepted by ``run`` and by the recovery classifier.

    Keys may be given in camelCase (``allowRetry``) or snake_case
    (``allow_retry``). Unknown keys are ignored. Unset values fall back to
    the engine configuration.
    """

    allow_retry: Optional[bool] = Field(default=None, alias="allowRetry")
    retry_count: int = Field(default=0, alias="retryCount", ge=0)
    enable_recovery_logs: Optional[bool] = Field(default=None, alias="enableRecoveryLogs")
    timeout: Optional[float] = Field(default=None, description="Per-step timeout in seconds", gt=0)

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("retry_count", mode="before")
    @classmethod
    def default_retry_count(cls, v: Any) -> Any:
        return 0 if v is None else v

    @classmethod
    def from_mapping(cls, options: Any) -> "WorkflowOptions":
        """
        Build options from a caller mapping.

        Raises:
            ValidationError: If options is not a mapping or holds invalid values
        """
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if not isinstance(options, Mapping):
            raise ValidationError("options requis object")
        try:
            return cls.model_validate(dict(options))
        except PydanticValidationError as exc:
            fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err["loc"])
            raise ValidationError(f"options invalides: {fields}") from exc

    @property
    def retry_allowed(self) -> bool:
        return self.allow_retry is not False
