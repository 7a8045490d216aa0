import logging
import queue
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional, Tuple

from PIL import Image

from .bits import bytes_to_groups, groups_to_bytes, read_groups, slots_for_bytes, write_groups
from .errors import CapacityOverflowError
from .utils import (
    HEADER_SLOTS, CapacityOverflow, Header, ImageLike, check_capacity,
    decode_header, flatten_channels, from_pixel_sequence, image_size,
    to_pixel_sequence, write_header,
)
from .utils_audio import Waveform, dequantize_waveform, quantize_waveform

logger = logging.getLogger(__name__)


# ======================================================
# ---- Progress records & job state ----
# ======================================================
@dataclass(frozen=True)
class ConcealPercentage:
    percent: float = 0.0
    done: bool = False
    data: Optional[Image.Image] = None

    @classmethod
    def empty(cls) -> "ConcealPercentage":
        return cls()


class EmbedState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


# ======================================================
# ---- Embedding engine ----
# ======================================================
class EmbedJob:
    """One cancellable embed of a waveform into an image.

    Iterating :meth:`run` drives the job. Each yielded record is a suspension
    point where a pending :meth:`cancel` is observed. A job ends in exactly
    one of COMPLETED (last record has ``done=True`` and the image),
    CANCELLED (no done record) or FAILED (capacity overflow, nothing yielded).

    Example:
        >>> job = EmbedJob(cover, waveform)
        >>> for record in job.run():
        ...     print(record.percent)
        >>> stego = record.data
    """

    def __init__(self, image: ImageLike, waveform: Waveform, batch_slots: Optional[int] = None):
        self._image = image
        self._waveform = waveform
        self._batch_slots = batch_slots
        self._cancel = threading.Event()
        self._state = EmbedState.IDLE
        self._lock = threading.Lock()
        self._finished = threading.Event()
        self.overflow_index: Optional[int] = None

    @property
    def state(self) -> EmbedState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self):
        """Request cancellation; honoured at the next progress emission."""
        self._cancel.set()

    def run(self) -> Iterator[ConcealPercentage]:
        if self._state is not EmbedState.IDLE:
            raise RuntimeError(f"Embed job already {self._state.value}")
        self._state = EmbedState.RUNNING
        try:
            yield from self._embed()
        except GeneratorExit:
            # the consumer stopped iterating; a yielded done record was already handed over
            self._cancel.set()
            with self._lock:
                if self._state is EmbedState.RUNNING:
                    self._state = EmbedState.CANCELLED
            raise
        except Exception:
            with self._lock:
                if self._state is EmbedState.RUNNING:
                    self._state = EmbedState.FAILED
            raise
        finally:
            self._finished.set()

    def wait(self, timeout: Optional[float] = None) -> Optional[EmbedState]:
        """Block until :meth:`run` has stopped.

        Returns the terminal state, or ``None`` if ``timeout`` expired first.
        """
        if not self._finished.wait(timeout):
            return None
        return self._state

    def _embed(self) -> Iterator[ConcealPercentage]:
        if self._observe_cancel():
            return
        width, height = image_size(self._image)
        pixels = to_pixel_sequence(self._image)
        shadow = quantize_waveform(self._waveform)

        fit = check_capacity(len(pixels), HEADER_SLOTS, len(shadow))
        if isinstance(fit, CapacityOverflow):
            self._state = EmbedState.FAILED
            self.overflow_index = fit.unit_index
            logger.warning("Payload of %d bytes does not fit %dx%d image: overflow at unit %d",
                           len(shadow), width, height, fit.unit_index)
            raise CapacityOverflowError(fit.unit_index, fit.available_units, fit.required_units)

        values = flatten_channels(pixels)
        groups = bytes_to_groups(shadow)
        total = HEADER_SLOTS + len(groups)
        batch = self._batch_slots or width * 3
        logger.info("Embedding %d samples into %dx%d image (%d slots, batch %d)",
                    len(shadow), width, height, total, batch)

        slot = write_header(values, Header(len(shadow), self._waveform.meta))
        yield ConcealPercentage(100.0 * slot / total)
        if self._observe_cancel():
            return

        for start in range(0, len(groups), batch):
            slot = write_groups(values, slot, groups[start:start + batch])
            yield ConcealPercentage(100.0 * slot / total)
            if self._observe_cancel():
                return

        result = from_pixel_sequence(pixels, width, height)
        if not self._complete():
            return
        logger.info("Embedding completed")
        yield ConcealPercentage(100.0, True, result)

    def _observe_cancel(self) -> bool:
        if self._cancel.is_set():
            self._state = EmbedState.CANCELLED
            logger.info("Embedding cancelled")
            return True
        return False

    def _complete(self) -> bool:
        with self._lock:
            if self._cancel.is_set():
                self._state = EmbedState.CANCELLED
                logger.info("Embedding cancelled")
                return False
            self._state = EmbedState.COMPLETED
            return True

    def _discard(self):
        """Cancel the job, including one whose image was never handed over."""
        self._cancel.set()
        with self._lock:
            if self._state in (EmbedState.RUNNING, EmbedState.COMPLETED):
                logger.info("Embedding abandoned by consumer")
                self._state = EmbedState.CANCELLED


_POLL = 0.05


def _offer(job: EmbedJob, records: "queue.Queue", item) -> bool:
    while True:
        try:
            records.put(item, timeout=_POLL)
            return True
        except queue.Full:
            if job.cancelled:
                return False


def _pump(job: EmbedJob, records: "queue.Queue", delivered: threading.Event):
    try:
        for record in job.run():
            if not _offer(job, records, record) and record.done:
                job._discard()
    except Exception as e:
        _offer(job, records, e)
    finally:
        delivered.set()


def _drain(job: EmbedJob, records: "queue.Queue", delivered: threading.Event) -> Iterator[ConcealPercentage]:
    handed_off = False
    try:
        while True:
            try:
                item = records.get(timeout=_POLL)
            except queue.Empty:
                if delivered.is_set() and records.empty():
                    return
                continue
            if isinstance(item, Exception):
                raise item
            if item.done:
                handed_off = True
            elif job.cancelled:
                return
            yield item
    finally:
        # closing the stream before the done record counts as cancellation
        if not handed_off:
            job._discard()


def begin_embed(image: ImageLike, waveform: Waveform, batch_slots: Optional[int] = None,
                executor: Optional[Executor] = None) -> Tuple[Iterator[ConcealPercentage], EmbedJob]:
    """Start an embed on a background thread.

    Returns the progress stream and the job, whose ``cancel()`` is the
    cancellation handle. The stream ends as soon as cancellation is requested
    and raises :class:`CapacityOverflowError` when the payload does not fit.
    A done record already queued when ``cancel()`` arrives is still delivered,
    so the job ends COMPLETED exactly when the stream hands over the image.
    Closing or abandoning the stream early cancels the job.
    """
    job = EmbedJob(image, waveform, batch_slots)
    # bounded, so the worker never runs more than a batch ahead of the consumer
    records: "queue.Queue" = queue.Queue(maxsize=1)
    delivered = threading.Event()
    if executor is None:
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="conceal-embed")
        pool.submit(_pump, job, records, delivered)
        pool.shutdown(wait=False)
    else:
        executor.submit(_pump, job, records, delivered)
    return _drain(job, records, delivered), job


def embed(image: ImageLike, waveform: Waveform, batch_slots: Optional[int] = None,
          on_progress: Optional[Callable[[ConcealPercentage], None]] = None) -> Image.Image:
    """Embed synchronously and return the stego image."""
    job = EmbedJob(image, waveform, batch_slots)
    result = None
    for record in job.run():
        if on_progress:
            on_progress(record)
        result = record
    return result.data


# ======================================================
# ---- Extraction engine ----
# ======================================================
def read_header(image: ImageLike) -> Header:
    return decode_header(to_pixel_sequence(image))


def extract(image: ImageLike) -> Waveform:
    pixels = to_pixel_sequence(image)
    header = decode_header(pixels)
    values = flatten_channels(pixels)
    groups = read_groups(values, HEADER_SLOTS, slots_for_bytes(header.payload_len))
    shadow = groups_to_bytes(groups, header.payload_len)
    logger.info("Extracted %d samples (%d Hz, %d ch, %d-bit)", header.payload_len,
                header.audio.sample_rate, header.audio.channels, header.audio.bit_depth)
    return dequantize_waveform(shadow, header.audio)
