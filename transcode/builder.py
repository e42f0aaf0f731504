"""Turns step graphs into job specs ready for submission."""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from transcode.errors import BuildError
from transcode.job_schema import JobSpec, Step
from transcode.steps import StepGraph
from transcode.storage import StorageDescriptor

Source = Union[StepGraph, Mapping[str, StepGraph], str]


def merge_steps(steps: Iterable[Step]) -> List[Step]:
    """Drops repeated identical steps, rejects different steps sharing a name."""
    merged: Dict[str, Step] = {}
    for step in steps:
        existing = merged.get(step.name)
        if existing is None:
            merged[step.name] = step
        elif existing != step:
            raise BuildError(f"duplicate step name {step.name!r} with different definitions")
    return list(merged.values())


class JobSpecBuilder:
    """
    Builds a JobSpec from one of:

    * a single StepGraph - one processed file, exported as ``export``
    * a mapping of version name to StepGraph - each exported as
      ``export_<name>``, with ``fields.versions`` recording which step's
      results belong to which version
    * a template id - steps live in the Transloadit template

    Graphs that don't end with an export step get one into ``store``.
    """

    def __init__(self, store: StorageDescriptor):
        self.store = store

    def build(
        self,
        source: Source,
        steps: Iterable[Step] = (),
        fields: Optional[Mapping[str, Any]] = None,
        notify_url: Optional[str] = None,
        template_id: Optional[str] = None,
    ) -> JobSpec:
        built_steps: List[Step] = []
        built_fields: Dict[str, Any] = {}

        if isinstance(source, str):
            template_id = source
        elif isinstance(source, StepGraph):
            graph = self._prepare(source, "export")
            built_steps.extend(graph.steps)
            built_fields["multiple"] = graph.multiple()
            built_fields["result"] = graph.result_name
        elif isinstance(source, Mapping):
            if not source:
                raise BuildError("no versions given")
            versions: Dict[str, str] = {}
            multiple: Dict[str, str] = {}
            for name, graph in source.items():
                if not isinstance(graph, StepGraph):
                    raise BuildError(f"version {name!r} is not a StepGraph: {graph!r}")
                graph = self._prepare(graph, f"export_{name}", label=f"version {name!r}")
                built_steps.extend(graph.steps)
                versions[name] = graph.result_name
                multiple[name] = graph.multiple()
            built_fields["versions"] = versions
            built_fields["multiple"] = multiple
        else:
            raise BuildError(f"cannot build a job spec from {source!r}")

        return JobSpec(
            steps=tuple(merge_steps([*built_steps, *steps])),
            # built fields win over caller-supplied ones
            fields={**(fields or {}), **built_fields},
            template_id=template_id,
            notify_url=notify_url,
        )

    def _prepare(self, graph: StepGraph, export_name: str, label: str = "file") -> StepGraph:
        if not graph.steps:
            raise BuildError(f"no steps defined for {label}")
        if not graph.imported:
            raise BuildError(f"missing import step for {label}")
        merge_steps(graph.steps)
        if not graph.exported:
            graph = graph.add_step(self.store.export_step(export_name))
        return graph
