import enum
import logging
from typing import Any, Awaitable, Callable

from app.client.api import FormApiError
from app.client.autosave import AutosaveCoordinator
from app.modules.forms.schemas import TOTAL_STEPS, step_key, validate_step


logger = logging.getLogger("app.client.wizard")

StepValidator = Callable[[int, dict[str, Any] | None], dict[str, str]]
Submitter = Callable[[dict[str, Any]], Awaitable[str]]


class WizardState(str, enum.Enum):
    STEP_1 = "step1"
    STEP_2 = "step2"
    STEP_3 = "step3"
    STEP_4 = "step4"
    REVIEW = "review"
    SUBMITTED = "submitted"

    @classmethod
    def for_step(cls, step: int) -> "WizardState":
        return cls(step_key(step))

    @property
    def step(self) -> int | None:
        if self in (WizardState.REVIEW, WizardState.SUBMITTED):
            return None
        return int(self.value[-1])


class InvalidTransition(Exception):
    pass


class FormWizard:
    """Four data steps, a review page and a terminal submitted state.

    Every step change is saved synchronously through the coordinator before
    the state moves, so navigation never depends on the debounce timer.
    """

    def __init__(
        self,
        coordinator: AutosaveCoordinator,
        submitter: Submitter,
        validator: StepValidator = validate_step,
    ):
        self.coordinator = coordinator
        self.submitter = submitter
        self.validator = validator
        self.state = WizardState.STEP_1
        self.submission_id: str | None = None

    async def start(self) -> WizardState:
        await self.coordinator.mount()
        self.state = WizardState.for_step(self.coordinator.current_step)
        return self.state

    @property
    def form_data(self) -> dict[str, dict[str, Any]]:
        return self.coordinator.form_data

    def edit_step_data(self, data: dict[str, Any]) -> None:
        step = self._require_step()
        self.coordinator.update(step_key(step), data)

    def update_field(self, name: str, value: Any) -> None:
        step = self._require_step()
        current = dict(self.form_data.get(step_key(step)) or {})
        current[name] = value
        self.coordinator.update(step_key(step), current)

    async def next(self) -> dict[str, str]:
        step = self._require_step()
        errors = self.validator(step, self.form_data.get(step_key(step)))
        if errors:
            return errors

        target_step = min(step + 1, TOTAL_STEPS)
        previous_step = self.coordinator.current_step
        self.coordinator.set_step(target_step)
        try:
            await self.coordinator.flush()
        except FormApiError:
            self.coordinator.current_step = previous_step
            raise

        self.state = WizardState.REVIEW if step == TOTAL_STEPS else WizardState.for_step(target_step)
        return {}

    async def previous(self) -> WizardState:
        step = self._require_step()
        if step == 1:
            raise InvalidTransition("already at the first step")
        await self._move_to(step - 1)
        return self.state

    async def edit(self, step: int) -> WizardState:
        if self.state is not WizardState.REVIEW:
            raise InvalidTransition(f"cannot jump to a step from {self.state.value}")
        if not 1 <= step <= TOTAL_STEPS:
            raise InvalidTransition(f"unknown step {step}")
        await self._move_to(step)
        return self.state

    async def submit(self) -> str:
        if self.state is not WizardState.REVIEW:
            raise InvalidTransition(f"cannot submit from {self.state.value}")

        for step in range(1, TOTAL_STEPS + 1):
            errors = self.validator(step, self.form_data.get(step_key(step)))
            if errors:
                raise InvalidTransition(f"step {step} is incomplete: {sorted(errors)}")

        # a late autosave must not recreate the progress the submission clears
        await self.coordinator.drain()
        self.submission_id = await self.submitter(dict(self.form_data))
        # the server drops the saved progress together with the submission
        self.coordinator.reset()
        self.state = WizardState.SUBMITTED
        logger.info("Form submitted as %s", self.submission_id)
        return self.submission_id

    async def close(self) -> None:
        if self.state is not WizardState.SUBMITTED:
            await self.coordinator.close()

    async def _move_to(self, step: int) -> None:
        self.coordinator.set_step(step)
        await self.coordinator.flush()
        self.state = WizardState.for_step(step)

    def _require_step(self) -> int:
        step = self.state.step
        if step is None:
            raise InvalidTransition(f"no active step in state {self.state.value}")
        return step
