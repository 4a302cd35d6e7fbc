import logging
import functools
import time

# Define Log Levels
DEBUG = logging.DEBUG
INFO = logging.INFO
WARNING = logging.WARNING
ERROR = logging.ERROR

LOG_FORMAT = (
    "%(asctime)s - [%(levelname)s] - %(name)s - [%(filename)s:%(lineno)d] - %(message)s"
)


# Singleton logger setup
def get_logger(name="GraphRewriter"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


logger = get_logger()


def set_log_level(level):
    logger.setLevel(level)


def trace_transformation(func):
    """Aspect: Log when a replacement callback produces a rewrite."""

    @functools.wraps(func)
    def wrapper(match, graph, *args, **kwargs):
        start_time = time.time()
        result = func(match, graph, *args, **kwargs)
        duration = (time.time() - start_time) * 1000

        # Only log when the callback actually produced a replacement
        if result is not None:
            created = graph.next_id - match.next_id_at_match
            logger.info(
                f"Rewriter {func.__qualname__} matched at node {match.anchor}, "
                f"created {created} nodes ({duration:.2f}ms)"
            )
        else:
            logger.debug(f"Rewriter {func.__qualname__} declined node {match.anchor}")
        return result

    return wrapper


def log_optimization(func):
    """Aspect: Log a whole pass run (node counts and duration)."""

    @functools.wraps(func)
    def wrapper(self, graph, *args, **kwargs):
        prefix = f"[{self.name}] "
        original_node_count = len(graph)
        logger.info(f"{prefix}Starting graph rewrite pass... ({original_node_count} nodes)")
        start_time = time.time()

        stats = func(self, graph, *args, **kwargs)

        duration = time.time() - start_time
        stats.duration = duration
        logger.info(
            f"{prefix}Pass finished in {duration:.3f}s. "
            f"Nodes: {original_node_count} -> {len(graph)}"
        )
        return stats

    return wrapper


def log_match(func):
    """Aspect: Log matching attempts (DEBUG level)."""

    @functools.wraps(func)
    def wrapper(self, node, graph, context=None):
        res = func(self, node, graph, context)
        if res:
            logger.debug(f"Matched pattern {self} on node: {node.id} (Kind: {node.kind.value})")
        return res

    return wrapper
