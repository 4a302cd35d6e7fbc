import os
import datetime
import logging
import time
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from .core import DEFAULT_MAX_ITERATIONS, BasePass, PassStats
from .errors import GraphRewriterError, PipelineError
from .ir import Graph
from .utils.logger import LOG_FORMAT, logger as custom_logger
from .utils.visualize import save_dot
from .validation import Violation, ViolationKind, validate_graph


class PassConfig:
    """One configured entry of a PassPipeline."""

    def __init__(
        self,
        pass_factory: Callable[..., BasePass],
        params: Optional[Dict[str, Any]] = None,
        fixpoint: bool = False,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        name: Optional[str] = None,
    ):
        if max_iterations < 1:
            raise PipelineError(f"max_iterations must be positive, got {max_iterations}")
        self.pass_factory = pass_factory
        self.params = dict(params or {})
        self.fixpoint = fixpoint
        self.max_iterations = max_iterations
        self._explicit_name = name
        self.name = name or getattr(pass_factory, "__name__", repr(pass_factory))

    def create(self) -> BasePass:
        """Instantiates the pass with its parameters."""
        try:
            instance = self.pass_factory(**self.params)
        except TypeError as e:
            raise PipelineError(f"Cannot create pass '{self.name}' with {self.params}: {e}") from e
        if self._explicit_name:
            instance.name = self._explicit_name
        return instance

    def __repr__(self):
        return (
            f"PassConfig({self.name!r}, params={self.params}, "
            f"fixpoint={self.fixpoint}, max_iterations={self.max_iterations})"
        )


class PassPipeline:
    """An explicit ordered list of configured passes."""

    def __init__(self, configs: Optional[List[PassConfig]] = None):
        self.configs: List[PassConfig] = list(configs or [])

    def add(
        self,
        pass_factory,
        *,
        fixpoint: bool = False,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        name: Optional[str] = None,
        **params,
    ) -> PassConfig:
        config = PassConfig(pass_factory, params, fixpoint, max_iterations, name)
        self.configs.append(config)
        return config

    def names(self) -> List[str]:
        return [config.name for config in self.configs]

    def __iter__(self) -> Iterator[PassConfig]:
        return iter(self.configs)

    def __len__(self) -> int:
        return len(self.configs)

    @classmethod
    def from_config(cls, config: Mapping[str, Any], catalog: Mapping[str, Callable[..., BasePass]]):
        """
        Builds a pipeline from a plain dict.

        Args:
            config: ``{"passes": [...], "remove_passes": [...]}``; each pass
                entry is a catalog name or a dict with ``name`` and optional
                ``params``, ``fixpoint`` and ``max_iterations``.
            catalog: Maps pass names to pass classes or factories

        Returns:
            PassPipeline in configuration order.

        Raises:
            PipelineError: Malformed entry or a name missing from the catalog.
        """
        entries = config.get("passes", [])
        if isinstance(entries, (str, dict)):
            raise PipelineError("'passes' must be a list")
        removed = set(config.get("remove_passes", []))

        pipeline = cls()
        seen = set()
        for entry in entries:
            if isinstance(entry, str):
                entry = {"name": entry}
            if not isinstance(entry, dict) or "name" not in entry:
                raise PipelineError(f"Invalid pass entry: {entry!r}")
            unknown_keys = set(entry) - {"name", "params", "fixpoint", "max_iterations"}
            if unknown_keys:
                raise PipelineError(
                    f"Unknown keys {sorted(unknown_keys)} in pass entry '{entry['name']}'"
                )
            name = entry["name"]
            if name not in catalog:
                raise PipelineError(
                    f"Pass '{name}' is not in the catalog. Available: {sorted(catalog)}"
                )
            seen.add(name)
            if name in removed:
                custom_logger.debug(f"Removed pass: {name}")
                continue
            params = entry.get("params", {})
            if not isinstance(params, dict):
                raise PipelineError(f"'params' of pass '{name}' must be a dict")
            fixpoint = entry.get("fixpoint", False)
            if not isinstance(fixpoint, bool):
                raise PipelineError(f"'fixpoint' of pass '{name}' must be true or false, got {fixpoint!r}")
            max_iterations = entry.get("max_iterations", DEFAULT_MAX_ITERATIONS)
            if isinstance(max_iterations, bool) or not isinstance(max_iterations, int):
                raise PipelineError(
                    f"'max_iterations' of pass '{name}' must be an integer, got {max_iterations!r}"
                )
            pipeline.add(
                catalog[name],
                fixpoint=fixpoint,
                max_iterations=max_iterations,
                name=name,
                **params,
            )

        for name in sorted(removed - seen):
            custom_logger.warning(f"Pass '{name}' in remove_passes was not in the list")
        return pipeline

    def __repr__(self):
        return f"PassPipeline({self.names()})"


class ValidationResult:
    """Outcome of PassManager.run."""

    def __init__(
        self,
        ok: bool,
        violations: Optional[List[Violation]] = None,
        failed_pass: Optional[str] = None,
        pass_stats: Optional[List[PassStats]] = None,
    ):
        self.ok = ok
        self.violations = violations or []
        self.failed_pass = failed_pass
        self.pass_stats = pass_stats or []

    @property
    def node_ids(self) -> List[int]:
        """Ids of the nodes named by the violations."""
        return sorted({v.node_id for v in self.violations if v.node_id is not None})

    def __bool__(self):
        return self.ok

    def __repr__(self):
        if self.ok:
            return f"ValidationResult(ok, passes={len(self.pass_stats)})"
        return (
            f"ValidationResult(failed, pass={self.failed_pass!r}, "
            f"violations={len(self.violations)})"
        )


class PassManager:
    """
    Runs a PassPipeline on a Graph.

    Every pass runs against a checkpoint of the graph. After the pass, dead
    nodes are pruned and the graph invariants are checked; a violation or a
    library error restores the checkpoint and stops the pipeline.
    """

    def __init__(
        self,
        pipeline: Optional[PassPipeline] = None,
        debug: bool = False,
        debug_dir: Optional[str] = None,
        log_file: Optional[str] = None,
        validate_input: bool = True,
    ):
        """
        Initialize the manager.

        Args:
            pipeline (PassPipeline, optional): Passes to run. Default empty.
            debug (bool): Dump the graph after every pass. Default False.
            debug_dir (str, optional): Dump directory; a timestamped
                ``run_...`` directory is created when debug is on and none is given.
            log_file (str, optional): Also write the log to this file.
            validate_input (bool): Check the input graph before rewriting. Default True.
        """
        self.pipeline = pipeline if pipeline is not None else PassPipeline()
        self.debug = debug
        self.debug_dir = debug_dir
        self.log_file = log_file
        self.validate_input = validate_input
        self._file_handler = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any], catalog: Mapping[str, Callable[..., BasePass]]):
        """Builds a manager from the same dict accepted by PassPipeline.from_config."""
        return cls(
            pipeline=PassPipeline.from_config(config, catalog),
            debug=bool(config.get("debug", False)),
            debug_dir=config.get("debug_dir"),
            log_file=config.get("log_file"),
            validate_input=bool(config.get("validate_input", True)),
        )

    def register_pass(self, pass_factory, **options) -> PassConfig:
        """Appends a pass to the manager's pipeline; see PassPipeline.add."""
        return self.pipeline.add(pass_factory, **options)

    def _setup_logging_and_debug(self):
        """Configures logging and creates debug directory."""
        if self.debug:
            if not self.debug_dir:
                timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
                self.debug_dir = f"run_{timestamp}"
            os.makedirs(self.debug_dir, exist_ok=True)
            # Redirect log to debug dir if not explicit
            if not self.log_file:
                self.log_file = os.path.join(self.debug_dir, "rewrite.log")

        if self.log_file and self._file_handler is None:
            file_handler = logging.FileHandler(self.log_file)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            custom_logger.addHandler(file_handler)
            self._file_handler = file_handler
            custom_logger.info(f"Logging to file: {self.log_file}")

    def close(self):
        """Detaches the log file handler, if any."""
        if self._file_handler is not None:
            custom_logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

    def _dump(self, graph: Graph, filename: str, highlight_nodes=None):
        if not self.debug or not self.debug_dir:
            return
        # TensorFlow is only needed for debug dumps
        from .utils.graph_io import save_graph

        path = os.path.join(self.debug_dir, filename)
        save_graph(graph, f"{path}.pbtxt")
        save_dot(graph, f"{path}.dot", highlight_nodes)
        custom_logger.debug(f"Saved graph to {path}.pbtxt")

    def _dump_rejected(self, graph: Graph, filename: str, highlight_nodes):
        """Dumps a graph that failed validation; it may be cyclic or dangling."""
        try:
            self._dump(graph, filename, highlight_nodes)
        except (GraphRewriterError, KeyError) as e:
            custom_logger.warning(f"Could not dump rejected graph '{filename}': {e}")

    def _fail(self, violations, failed_pass, pass_stats) -> ValidationResult:
        where = f"after pass '{failed_pass}'" if failed_pass else "in input graph"
        custom_logger.error(f"Graph validation failed {where}: {len(violations)} violation(s)")
        for violation in violations:
            custom_logger.error(f"  {violation}")
        return ValidationResult(False, violations, failed_pass, pass_stats)

    def run(self, graph: Graph, pipeline: Optional[PassPipeline] = None) -> ValidationResult:
        """
        Applies the pipeline to ``graph`` in place.

        Args:
            graph: Graph to rewrite
            pipeline: Overrides the manager's pipeline for this run

        Returns:
            ValidationResult; on failure the graph holds its state from
            before the failing pass.
        """
        pipeline = pipeline if pipeline is not None else self.pipeline
        self._setup_logging_and_debug()

        if self.validate_input:
            violations = validate_graph(graph, allow_dead_nodes=True)
            if violations:
                return self._fail(violations, None, [])

        initial_node_count = len(graph)
        custom_logger.info(f"Applying {len(pipeline)} passes: {pipeline.names()}")
        self._dump(graph, "00_initial")

        start_time = time.time()
        all_stats: List[PassStats] = []
        for step, config in enumerate(pipeline, start=1):
            state = graph.checkpoint()
            try:
                pass_instance = config.create()
                stats = pass_instance.transform(
                    graph, fixpoint=config.fixpoint, max_iterations=config.max_iterations
                )
            except GraphRewriterError as e:
                custom_logger.warning(f"Rolling back graph state before pass '{config.name}'...")
                graph.rollback(state)
                node_ids = getattr(e, "node_ids", None) or [None]
                violations = [
                    Violation(ViolationKind.PASS_FAILURE, node_id, f"{type(e).__name__}: {e}")
                    for node_id in node_ids
                ]
                return self._fail(violations, config.name, all_stats)
            except Exception:
                graph.rollback(state)
                raise

            stats.name = config.name
            graph.prune_dead_nodes()
            stats.nodes_after = len(graph)
            all_stats.append(stats)

            violations = validate_graph(graph)
            if violations:
                rejected = graph.copy() if self.debug else None
                custom_logger.warning(f"Rolling back graph state before pass '{config.name}'...")
                graph.rollback(state)
                if rejected is not None:
                    self._dump_rejected(
                        rejected,
                        f"{step:02d}_{config.name}_rejected",
                        {v.node_id for v in violations if v.node_id is not None},
                    )
                return self._fail(violations, config.name, all_stats)

            self._dump(graph, f"{step:02d}_{config.name}")

        total_time = time.time() - start_time
        self._dump(graph, "final")
        self._log_final_summary(all_stats, initial_node_count, len(graph), total_time)
        return ValidationResult(True, [], None, all_stats)

    def _log_final_summary(self, all_stats, initial_node_count, final_node_count, total_time):
        """Log final rewrite summary with per-pass statistics."""
        nodes_removed = initial_node_count - final_node_count

        custom_logger.info("")
        custom_logger.info("=" * 70)
        custom_logger.info("REWRITE SUMMARY")
        custom_logger.info("=" * 70)

        if all_stats:
            custom_logger.info("")
            custom_logger.info("Per-Pass Statistics:")
            custom_logger.info("-" * 70)
            custom_logger.info(
                f"{'Pass':<30} {'Iters':>6} {'Matches':>8} {'Rejected':>8} {'Nodes':>12} {'Time':>8}"
            )
            custom_logger.info("-" * 70)
            for stats in all_stats:
                nodes_str = f"{stats.nodes_before} -> {stats.nodes_after}"
                limit = " (limit)" if stats.hit_iteration_limit else ""
                custom_logger.info(
                    f"  {stats.name:<28} {stats.iterations:>6} {stats.matches:>8} "
                    f"{stats.rejected:>8} {nodes_str:>12} {stats.duration:>7.3f}s{limit}"
                )
            custom_logger.info("-" * 70)

        custom_logger.info("")
        custom_logger.info("Overall:")
        custom_logger.info(f"  Total passes executed: {len(all_stats)}")
        custom_logger.info(f"  Total time: {total_time:.3f}s")
        custom_logger.info(
            f"  Nodes: {initial_node_count} -> {final_node_count} (removed: {nodes_removed})"
        )
        custom_logger.info("=" * 70)
