"""Application services orchestrating mastering use-cases."""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Callable, Iterable, Mapping, Sequence
from uuid import uuid4

from mastering_engine.analysis import AnalysisResult, Suggestion, analyze, generate_suggestions
from mastering_engine.application.event_publisher import (
    CompositeEventPublisher,
    EventPublisher,
    NullEventPublisher,
)
from mastering_engine.application.notifications import NotificationDispatcher
from mastering_engine.application.scheduler import (
    INPUT_ANALYSIS_ARTIFACT,
    JobContext,
    JobOutcome,
    JobScheduler,
    JobSnapshot,
    RequirementRegistry,
    Stage,
    utc_now,
)
from mastering_engine.audio_contract import AudioBuffer
from mastering_engine.chain import ChainRegistry, MasteringChain, Module
from mastering_engine.domain.events import (
    AnalysisCompleted,
    ChainApplied,
    ChainCreated,
    DomainEvent,
    ReferenceMatched,
)
from mastering_engine.domain.models import EnhancementRequest, ReferenceTrack, Requirement
from mastering_engine.errors import ValidationError
from mastering_engine.infrastructure.client_channels import ClientChannelPublisher, ClientRegistry, EmitFn
from mastering_engine.matching import DEFAULT_REFERENCES, ReferenceLibrary, match_reference
from mastering_engine.mastering_options import MasteringTarget
from mastering_engine.presets import PRESETS, select_chain_id
from mastering_engine.utils.config import ChainSpec, EngineSettings, EnhancementRequestSpec


MASTERING_ENGINE_NAME = "mastering"

Analyzer = Callable[[AudioBuffer], AnalysisResult]


@dataclass(frozen=True, slots=True)
class MasteringRun:
    """Output of a synchronous mastering operation."""

    chain: MasteringChain
    output: AudioBuffer
    input_analysis: AnalysisResult | None = None


class AnalysisCache:
    """Bounded LRU of analysis results keyed by analysis id."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self._items: OrderedDict[str, AnalysisResult] = OrderedDict()
        self._lock = threading.Lock()

    def put(self, result: AnalysisResult) -> None:
        with self._lock:
            self._items[result.analysis_id] = result
            self._items.move_to_end(result.analysis_id)
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def get(self, analysis_id: str) -> AnalysisResult:
        with self._lock:
            result = self._items.get(analysis_id)
            if result is not None:
                self._items.move_to_end(analysis_id)
        if result is None:
            raise ValidationError("unknown_analysis", f"Analysis '{analysis_id}' not found.")
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def _with_overrides(
    chain: MasteringChain, overrides: Mapping[str, Mapping[str, float]] | None
) -> MasteringChain:
    if overrides is None:
        return chain
    if not isinstance(overrides, Mapping) or not all(
        isinstance(module_id, str) and isinstance(parameters, Mapping)
        for module_id, parameters in overrides.items()
    ):
        raise ValidationError(
            "invalid_parameter", "'overrides' must map module ids to parameter mappings."
        )
    for module_id, parameters in overrides.items():
        module = chain.module(module_id)
        chain = chain.with_module(
            Module.create(
                module.kind,
                module.order,
                {**module.parameters, **parameters},
                module_id=module.id,
                enabled=module.enabled,
                bypass=module.bypass,
                solo=module.solo,
            )
        )
    return chain


def _run_chain_step(chain_key: str, index: int, context: JobContext) -> None:
    steps = context.artifacts[chain_key].compile()
    if index < len(steps):
        context.buffer = steps[index](context.buffer)


def _current_analysis(context: JobContext, analyzer: Analyzer) -> AnalysisResult:
    # The scheduler's input analysis holds until a chain has changed the buffer.
    if INPUT_ANALYSIS_ARTIFACT in context.artifacts and all(step == "analyze" for step in context.applied):
        return context.artifacts[INPUT_ANALYSIS_ARTIFACT]
    return analyzer(context.buffer)


class AnalyzeHandler:
    def __init__(self, analyzer: Analyzer = analyze) -> None:
        self.analyzer = analyzer

    def validate(self, requirement: Requirement) -> None:  # noqa: ARG002
        return

    def plan(self, requirement: Requirement) -> Sequence[Stage]:  # noqa: ARG002
        def _analyze(context: JobContext) -> None:
            context.artifacts["analysis"] = _current_analysis(context, self.analyzer)
            context.applied.append("analyze")

        return [_analyze]


class ApplyChainHandler:
    def __init__(self, chains: ChainRegistry) -> None:
        self.chains = chains

    def _chain(self, requirement: Requirement) -> MasteringChain:
        chain_id = requirement.parameters.get("chain_id")
        if not isinstance(chain_id, str):
            raise ValidationError("missing_parameter", "apply_chain requires a 'chain_id' parameter.")
        return _with_overrides(self.chains.get(chain_id), requirement.parameters.get("overrides"))

    def validate(self, requirement: Requirement) -> None:
        self._chain(requirement)

    def plan(self, requirement: Requirement) -> Sequence[Stage]:
        chain = self._chain(requirement)
        key = f"chain:{chain.id}:{uuid4().hex}"

        def _prepare(context: JobContext) -> None:
            context.artifacts[key] = chain
            context.applied.append(chain.id)

        return [_prepare, *(partial(_run_chain_step, key, index) for index in range(len(chain.compile())))]


class MatchReferenceHandler:
    def __init__(self, references: ReferenceLibrary, analyzer: Analyzer = analyze) -> None:
        self.references = references
        self.analyzer = analyzer

    def _reference(self, requirement: Requirement) -> ReferenceTrack:
        reference_id = requirement.parameters.get("reference_id")
        if not isinstance(reference_id, str):
            raise ValidationError("missing_parameter", "match_reference requires a 'reference_id' parameter.")
        return self.references.get(reference_id)

    def validate(self, requirement: Requirement) -> None:
        self._reference(requirement)

    def plan(self, requirement: Requirement) -> Sequence[Stage]:
        reference = self._reference(requirement)
        key = f"match:{reference.id}:{uuid4().hex}"

        def _derive(context: JobContext) -> None:
            chain = match_reference(_current_analysis(context, self.analyzer), reference)
            context.artifacts[key] = chain
            context.applied.append(chain.id)

        # Matching chains always hold four modules.
        return [_derive, *(partial(_run_chain_step, key, index) for index in range(4))]


class AutoMasterHandler:
    def __init__(self, chains: ChainRegistry) -> None:
        self.chains = chains

    def _chain(self, requirement: Requirement) -> MasteringChain:
        return self.chains.get(select_chain_id(requirement.parameters.get("target")))

    def validate(self, requirement: Requirement) -> None:
        self._chain(requirement)

    def plan(self, requirement: Requirement) -> Sequence[Stage]:
        return ApplyChainHandler(self.chains).plan(
            Requirement(
                engine=requirement.engine,
                operation="apply_chain",
                parameters={"chain_id": self._chain(requirement).id},
                quality=requirement.quality,
                real_time=requirement.real_time,
            )
        )


class MasteringEngine:
    """Owns every piece of engine state: clients, chains, references, caches and the scheduler."""

    def __init__(
        self,
        settings: EngineSettings | None = None,
        event_publisher: EventPublisher | None = None,
        emit: EmitFn | None = None,
        references: Iterable[ReferenceTrack] = DEFAULT_REFERENCES,
        presets: Mapping[str, MasteringChain] = PRESETS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.clients = ClientRegistry()
        self.chains = ChainRegistry(presets)
        self.references = ReferenceLibrary(references)
        self.analyses = AnalysisCache(self.settings.analysis_cache_size)

        publishers: list[EventPublisher] = [event_publisher or NullEventPublisher()]
        if emit is not None:
            publishers.append(ClientChannelPublisher(self.clients, emit))
        self.dispatcher = NotificationDispatcher(CompositeEventPublisher(publishers))

        self.requirements = RequirementRegistry()
        self.requirements.register(MASTERING_ENGINE_NAME, "analyze", AnalyzeHandler(self._analyze_and_cache))
        self.requirements.register(MASTERING_ENGINE_NAME, "apply_chain", ApplyChainHandler(self.chains))
        self.requirements.register(
            MASTERING_ENGINE_NAME, "match_reference", MatchReferenceHandler(self.references, self._analyze_and_cache)
        )
        self.requirements.register(MASTERING_ENGINE_NAME, "auto_master", AutoMasterHandler(self.chains))

        self.scheduler = JobScheduler(
            self.requirements,
            self.dispatcher,
            worker_count=self.settings.worker_count,
            watchdog_interval_s=self.settings.watchdog_interval_s,
            progress_substeps=self.settings.progress_substeps,
            analyzer=self._analyze_and_cache,
            clock=clock,
            retained_outcomes=self.settings.retained_outcomes,
        )

    def __enter__(self) -> "MasteringEngine":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def start(self) -> None:
        self.dispatcher.start()
        self.scheduler.start()

    def close(self) -> None:
        self.scheduler.shutdown(cancel_pending=True)
        self.dispatcher.stop()

    def _publish(self, event: DomainEvent) -> None:
        self.dispatcher.submit(event)

    def connect_client(self, client_id: str | None = None) -> str:
        client_id = client_id or str(uuid4())
        self.clients.connect(client_id)
        return client_id

    def disconnect_client(self, client_id: str) -> None:
        self.clients.disconnect(client_id)

    def analyze_audio(self, buffer: AudioBuffer, client_id: str | None = None) -> AnalysisResult:
        result = self._analyze_and_cache(buffer)
        self._publish(
            AnalysisCompleted(
                correlation_id=result.analysis_id,
                client_id=client_id,
                payload_summary={
                    "integrated_lufs": result.integrated_lufs,
                    "true_peak_dbfs": result.true_peak_dbfs,
                    "dynamic_range_db": result.dynamic_range_db,
                    "advisories": list(result.advisories),
                },
            )
        )
        return result

    def _analyze_and_cache(self, buffer: AudioBuffer) -> AnalysisResult:
        result = analyze(buffer)
        self.analyses.put(result)
        return result

    def get_analysis(self, analysis_id: str) -> AnalysisResult:
        return self.analyses.get(analysis_id)

    def get_mastering_suggestions(self, analysis_id: str) -> tuple[Suggestion, ...]:
        return generate_suggestions(self.analyses.get(analysis_id))

    def apply_mastering_chain(
        self,
        buffer: AudioBuffer,
        chain_id: str,
        overrides: Mapping[str, Mapping[str, float]] | None = None,
        client_id: str | None = None,
    ) -> MasteringRun:
        chain = _with_overrides(self.chains.get(chain_id), overrides)
        output = chain.apply(buffer)
        self._publish(
            ChainApplied(
                correlation_id=str(uuid4()),
                client_id=client_id,
                payload_summary={
                    "chain_id": chain.id,
                    "active_modules": [step.module.id for step in chain.compile()],
                    "duration_seconds": buffer.duration_seconds,
                },
            )
        )
        return MasteringRun(chain=chain, output=output)

    def match_reference(
        self, buffer: AudioBuffer, reference_id: str, client_id: str | None = None
    ) -> MasteringRun:
        reference = self.references.get(reference_id)
        analysis = self.analyze_audio(buffer, client_id=client_id)
        chain = match_reference(analysis, reference)
        output = chain.apply(buffer)
        self._publish(
            ReferenceMatched(
                correlation_id=analysis.analysis_id,
                client_id=client_id,
                payload_summary={"reference_id": reference.id, "chain": chain.to_dict()},
            )
        )
        return MasteringRun(chain=chain, output=output, input_analysis=analysis)

    def auto_master(
        self,
        buffer: AudioBuffer,
        target: MasteringTarget | str | None = None,
        client_id: str | None = None,
    ) -> MasteringRun:
        analysis = self.analyze_audio(buffer, client_id=client_id)
        run = self.apply_mastering_chain(buffer, select_chain_id(target), client_id=client_id)
        return MasteringRun(chain=run.chain, output=run.output, input_analysis=analysis)

    def create_custom_chain(
        self, spec: ChainSpec | Mapping[str, Any], client_id: str | None = None
    ) -> str:
        chain = self.chains.create_custom_chain(spec)
        self._publish(
            ChainCreated(
                correlation_id=chain.id,
                client_id=client_id,
                payload_summary={"name": chain.name, "modules": len(chain.modules)},
            )
        )
        return chain.id

    def set_module_flags(
        self,
        chain_id: str,
        module_id: str,
        enabled: bool | None = None,
        bypass: bool | None = None,
        solo: bool | None = None,
    ) -> MasteringChain:
        return self.chains.set_module_flags(chain_id, module_id, enabled=enabled, bypass=bypass, solo=solo)

    def list_chains(self) -> list[MasteringChain]:
        return self.chains.list()

    def list_references(self) -> list[ReferenceTrack]:
        return self.references.list()

    def submit_request(
        self,
        request: EnhancementRequest | EnhancementRequestSpec | Mapping[str, Any],
        buffer: AudioBuffer,
    ) -> str:
        if not isinstance(request, EnhancementRequest):
            request = EnhancementRequest.from_spec(request)
        return self.scheduler.submit(request, buffer)

    def cancel_request(self, request_id: str) -> bool:
        return self.scheduler.cancel(request_id)

    def request_status(self, request_id: str) -> JobSnapshot:
        return self.scheduler.snapshot(request_id)

    def wait_for_request(self, request_id: str, timeout: float | None = None) -> JobOutcome:
        outcome = self.scheduler.wait(request_id, timeout)
        self.dispatcher.flush(timeout)
        return outcome

    def engine_status(self) -> dict[str, Any]:
        return {
            "running": self.scheduler.running,
            "connected_clients": len(self.clients),
            "chains": len(self.chains.list()),
            "references": len(self.references.list()),
            "cached_analyses": len(self.analyses),
            "queued_requests": self.scheduler.pending_count(),
            "active_requests": self.scheduler.active_count(),
            "retained_outcomes": self.scheduler.retained_count(),
            "worker_count": self.settings.worker_count,
            "operations": [f"{engine}.{operation}" for engine, operation in self.requirements.operations()],
        }
