"""Immutable chains of assembly steps, one chain per logical file."""
from typing import Any, Iterable, Optional, Tuple, Union

from transcode.job_schema import Step

SINGLE = "single"
LIST = "list"
MULTIPLICITIES = (SINGLE, LIST)

UseArg = Union[None, str, Step, Iterable[Union[str, Step]]]


def _use_names(use: UseArg) -> Optional[Tuple[str, ...]]:
    if use is None:
        return None
    if isinstance(use, (str, Step)):
        use = [use]
    return tuple(item.name if isinstance(item, Step) else item for item in use)


def make_step(name: str, robot: str, use: UseArg = None, **options: Any) -> Step:
    """Builds a step; ``use`` takes step names, steps, or a list of either."""
    return Step(name=name, robot=robot, options=options, use=_use_names(use))


class StepGraph:
    """
    Ordered chain of steps producing one file (or one list of files).

    Every "mutator" returns a new graph; the step tuple is shared with the
    original and only the appended tail is new.
    """

    __slots__ = ("_steps", "_multiple")

    def __init__(self, steps: Iterable[Step] = (), multiple: str = SINGLE):
        if multiple not in MULTIPLICITIES:
            raise ValueError(f"multiple must be one of {MULTIPLICITIES}, got {multiple!r}")
        self._steps = tuple(steps)
        self._multiple = multiple

    @property
    def steps(self) -> Tuple[Step, ...]:
        return self._steps

    def add_step(self, step: Union[Step, str], robot: Optional[str] = None, use: UseArg = None, **options: Any) -> "StepGraph":
        if not isinstance(step, Step):
            if robot is None:
                raise TypeError("add_step() needs a robot when given a step name")
            step = make_step(step, robot, use=use, **options)

        if step.use is None and self._steps:
            step = step.model_copy(update={"use": (self._steps[-1].name,)})

        return StepGraph(self._steps + (step,), self._multiple)

    def multiple(self, format: Optional[str] = None):
        """Returns the multiplicity, or a copy with ``format`` set."""
        if format is None:
            return self._multiple
        return StepGraph(self._steps, format)

    @property
    def imported(self) -> bool:
        return bool(self._steps) and self._steps[0].is_import

    @property
    def exported(self) -> bool:
        return bool(self._steps) and self._steps[-1].is_export

    @property
    def result_name(self) -> Optional[str]:
        if not self._steps:
            return None
        if self.exported and len(self._steps) > 1:
            return self._steps[-2].name
        return self._steps[-1].name

    def __len__(self) -> int:
        return len(self._steps)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StepGraph):
            return NotImplemented
        return self._steps == other._steps and self._multiple == other._multiple

    def __repr__(self) -> str:
        names = " -> ".join(step.name for step in self._steps)
        return f"StepGraph({names or 'empty'}, multiple={self._multiple!r})"
