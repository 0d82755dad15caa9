"""
BuzzCraft Lifecycle - Transition Contract

Every transition type shares the same three phases:

1. ``validate`` - confirm the claimed state pair is this transition's pair
   (raises otherwise) and list the context fields the caller left out
   (never raises once the pair is legal).
2. ``act`` - record the logical state change. Always succeeds; applies
   defaults to the context payload and stamps the record. No side effects.
3. ``cleanup`` - decide which follow-up actions should run after the
   transition. A pure function of the record's outcome, its age and its
   normalized context: it names actions, it never performs them.

Subclasses only declare data (fields, defaults, action lists, thresholds).
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from buzzcraft.state.exceptions import StateError, ValidationError
from buzzcraft.state.lifecycle import TRANSITIONS, ProjectState, TransitionType
from buzzcraft.state.models import CleanupResult, TransitionRecord, ValidationResult, utc_now

logger = logging.getLogger(__name__)

VALIDATION_CACHE_ACTION = "clear-validation-cache"


def is_present(mapping: Mapping, key: str) -> bool:
    """
    Field presence as validators understand it.

    A field is present when the key exists and its value is neither None nor
    an empty string. ``False`` and ``0`` are present values.
    """
    value = mapping.get(key)
    return value is not None and value != ""


def with_default(mapping: Mapping, key: str, default: Any) -> Any:
    """Value of ``key``, or ``default`` when the field is absent."""
    return mapping.get(key) if is_present(mapping, key) else default


def enabled_unless_false(mapping: Optional[Mapping], key: str) -> bool:
    """Boolean option that defaults to on: only an explicit False disables it."""
    if not isinstance(mapping, Mapping):
        return True
    return mapping.get(key) is not False


def check_project_id(project_id: Any) -> str:
    if not project_id or not isinstance(project_id, str):
        raise ValidationError("projectId requis string")
    return project_id


class Transition:
    """
    Validator, actor and cleanup of one transition type.

    Attributes:
        transition_type: Transition this object implements
        domain: Lowercase word used in action names (``save``, ``edit`` ...)
        required_fields: Top-level context fields the validator requires
        nested_fields: Sub-fields required when their parent field is present
        success_actions: Cleanup actions after a successful transition
        failure_actions: Cleanup actions after a failed transition
        trailing_actions: Actions appended after the validation cache action
        log_age_minutes: Age above which old transition logs are cleaned
    """

    transition_type: ClassVar[TransitionType]
    domain: ClassVar[str]
    required_fields: ClassVar[Tuple[str, ...]] = ()
    nested_fields: ClassVar[Dict[str, Tuple[str, ...]]] = {}
    success_actions: ClassVar[Tuple[str, ...]] = ()
    failure_actions: ClassVar[Tuple[str, ...]] = ()
    trailing_actions: ClassVar[Tuple[str, ...]] = ()
    log_age_minutes: ClassVar[float] = 10

    def __init__(self, log_age_minutes: Optional[float] = None) -> None:
        if log_age_minutes is not None:
            self.log_age_minutes = log_age_minutes

    @property
    def from_state(self) -> ProjectState:
        return TRANSITIONS[self.transition_type][0]

    @property
    def to_state(self) -> ProjectState:
        return TRANSITIONS[self.transition_type][1]

    @property
    def name(self) -> str:
        return self.transition_type.value

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate(self, from_state: Any, to_state: Any, context: Any) -> ValidationResult:
        """
        Validate a claimed transition.

        Args:
            from_state: Claimed starting state
            to_state: Claimed ending state
            context: Transition context mapping

        Returns:
            ValidationResult listing every missing field as ``"<field> manquant"``

        Raises:
            ValidationError: If a state is missing/not a string or context is not a mapping
            StateError: If the pair is not this transition's pair (checked
                before the context is looked at)
        """
        if not from_state or not isinstance(from_state, str):
            raise ValidationError("fromState requis string")
        if not isinstance(to_state, str) or not to_state:
            raise ValidationError("toState requis string")

        self._check_state_pair(from_state, to_state)

        if not isinstance(context, Mapping):
            raise ValidationError("context requis object")

        requirements = self.missing_requirements(context)
        can_transition = not requirements

        logger.info(
            f"Transition validation: {context.get('projectId', 'unknown')} "
            f"{self.name} {from_state}->{to_state}: "
            f"{'READY' if can_transition else 'MISSING ' + ', '.join(requirements)}"
        )
        return ValidationResult(valid=True, can_transition=can_transition, requirements=requirements)

    def _check_state_pair(self, from_state: str, to_state: str) -> None:
        expected = (self.from_state.value, self.to_state.value)
        if from_state != self.from_state.value:
            message = f"{self.name} seulement depuis {self.from_state.value}"
        elif to_state != self.to_state.value:
            verb = "reste en" if self.from_state == self.to_state else "va vers"
            message = f"{self.name} {verb} {self.to_state.value}"
        else:
            return
        logger.warning(f"Illegal state pair for {self.name}: {from_state}->{to_state}")
        raise StateError(message, self.name, from_state, to_state, expected)

    def missing_requirements(self, context: Mapping) -> List[str]:
        """Every missing required field, then every missing nested sub-field."""
        requirements = [
            f"{field} manquant" for field in self.required_fields
            if not is_present(context, field)
        ]
        for parent, subfields in self.nested_fields.items():
            if not is_present(context, parent):
                continue
            config = context[parent]
            config = config if isinstance(config, Mapping) else {}
            requirements.extend(
                f"{parent}.{sub} manquant" for sub in subfields
                if not is_present(config, sub)
            )
        return requirements

    # ------------------------------------------------------------------
    # Action
    # ------------------------------------------------------------------

    async def act(self, project_id: Any, context: Any) -> TransitionRecord:
        """
        Record the logical state change.

        Returns:
            TransitionRecord with this transition's literal state pair,
            ``success=True`` and the normalized context

        Raises:
            ValidationError: If project_id is empty or context is not a mapping
        """
        check_project_id(project_id)
        if not isinstance(context, Mapping):
            raise ValidationError("context requis object")

        timestamp = utc_now()
        transition_data = {
            "transitionType": self.name,
            "projectId": project_id,
            "fromState": self.from_state.value,
            "toState": self.to_state.value,
            "timestamp": timestamp.isoformat(),
            "context": self.normalize(context),
        }
        return TransitionRecord(
            success=True,
            from_state=self.from_state,
            to_state=self.to_state,
            timestamp=timestamp,
            transition_data=transition_data,
        )

    def normalize(self, context: Mapping) -> Dict[str, Any]:
        """Context view embedded in the record, with defaults applied."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def cleanup(
        self,
        record: Any,
        project_id: Any,
        now: Optional[datetime] = None,
    ) -> CleanupResult:
        """
        Decide the follow-up actions for a transition record.

        Order: outcome branch, old-log cleanup (if older than the threshold),
        ``clear-validation-cache``, then this transition's trailing actions.

        Raises:
            ValidationError: If record is not a transition record or project_id is empty
        """
        record = self._coerce_record(record)
        check_project_id(project_id)

        actions: List[str] = []
        if record.success:
            actions.extend(self.success_plan(record))
        else:
            actions.extend(self.failure_plan(record))

        if record.age_minutes(now) > self.log_age_minutes:
            actions.append(f"cleanup-old-{self.domain}-logs")

        actions.append(VALIDATION_CACHE_ACTION)
        actions.extend(self.trailing_actions)
        return CleanupResult(cleaned=True, actions=actions)

    def success_plan(self, record: TransitionRecord) -> Sequence[str]:
        """Actions after a successful transition; may depend on the normalized context."""
        return self.success_actions

    def failure_plan(self, record: TransitionRecord) -> Sequence[str]:
        """Actions after a failed transition; may depend on the normalized context."""
        return self.failure_actions

    def failed_record(self, error_message: str = "") -> TransitionRecord:
        """Synthetic failed record used to plan a rollback."""
        return TransitionRecord(
            success=False,
            from_state=self.from_state,
            to_state=self.to_state,
            transition_data={"transitionType": self.name, "error": error_message},
        )

    @staticmethod
    def _coerce_record(record: Any) -> TransitionRecord:
        if isinstance(record, TransitionRecord):
            return record
        if not isinstance(record, Mapping):
            raise ValidationError("transitionResult requis object")
        try:
            return TransitionRecord.model_validate(dict(record))
        except PydanticValidationError as exc:
            raise ValidationError(f"transitionResult invalide: {exc.error_count()} erreur(s)") from exc
