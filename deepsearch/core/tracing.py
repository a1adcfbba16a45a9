import time
import uuid
from contextlib import contextmanager
from loguru import logger


@contextmanager
def trace(name: str, **fields):
    """
    Привязывает trace_id (и переданные поля) ко всем записям loguru внутри блока.
    Возвращает trace_id.
    """
    trace_id = uuid.uuid4().hex
    with logger.contextualize(trace=name, trace_id=trace_id, **fields):
        yield trace_id


@contextmanager
def span(name: str, **input):
    """
    Логирует начало и конец операции с длительностью.
    В словарь, который отдаёт with, можно положить output, он попадёт в лог завершения.
    """
    output: dict = {}
    started = time.perf_counter()
    logger.debug(f"[{name}] started: {input}")
    try:
        yield output
    except Exception as e:
        elapsed = (time.perf_counter() - started) * 1000
        logger.warning(f"[{name}] failed after {elapsed:.0f}ms: {e}")
        raise
    elapsed = (time.perf_counter() - started) * 1000
    logger.info(f"[{name}] finished in {elapsed:.0f}ms: {output}")
