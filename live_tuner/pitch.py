from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

YIN_THRESHOLD = 0.12
HPS_HARMONICS = 5
DB_FLOOR = -100.0
DB_CEILING = 0.0
FUSION_CONFIDENCE_MIN = 0.7
AGREEMENT_RATIO = 0.05
AUTOCORRELATION_WEIGHT = 0.7


@dataclass(frozen=True)
class PitchEstimate:
    frequency: float | None
    confidence: float

    @property
    def voiced(self) -> bool:
        return self.frequency is not None


NO_PITCH = PitchEstimate(None, 0.0)

# Fusion output has the same shape as a single estimate.
FusedPitch = PitchEstimate


def apply_hann_window(buffer: np.ndarray) -> np.ndarray:
    """Multiply ``buffer`` by a symmetric Hann window, in place."""
    n = int(buffer.size)
    if n < 2:
        return buffer
    buffer *= np.hanning(n).astype(buffer.dtype, copy=False)
    return buffer


def yin_pitch(
    frame: np.ndarray,
    sample_rate: int,
    min_hz: float,
    max_hz: float,
    *,
    threshold: float = YIN_THRESHOLD,
    window: np.ndarray | None = None,
) -> PitchEstimate:
    """
    YIN fundamental estimate of a time-domain frame.

    With ``window`` the frame is passed unwindowed and each lag term of the
    difference function is weighted by window[i] * window[i + lag]. A periodic
    frame then still differences to zero at its exact period, so the window
    does not pull the estimate sharp.

    Steps:
    - Difference function d(lag) over lags [0, sr/min_hz].
    - Cumulative-mean-normalized difference (1 at lag 0).
    - First dip below ``threshold`` inside [sr/max_hz, sr/min_hz), walked down
      to its local minimum; global minimum if nothing crosses.
    - Parabolic interpolation of d around the chosen lag.
    - Confidence = 1 - normalized difference at that lag.
    """
    if sample_rate <= 0 or min_hz <= 0 or max_hz <= min_hz:
        return NO_PITCH
    x = np.asarray(frame, dtype=np.float64)
    n = int(x.size)
    if n < 4 or not np.all(np.isfinite(x)):
        return NO_PITCH
    weights = None
    if window is not None:
        weights = np.asarray(window, dtype=np.float64)
        if weights.shape != x.shape:
            raise ValueError(f"window length {weights.size} does not match frame length {n}")

    min_period = max(1, int(math.floor(sample_rate / float(max_hz))))
    max_period = min(int(math.ceil(sample_rate / float(min_hz))), n - 1)
    if weights is not None:
        # Weighted lags need the two window halves to overlap substantially.
        max_period = min(max_period, n // 2)
    if max_period - min_period < 2:
        return NO_PITCH

    diff = _difference(x, max_period, weights)
    cmnd = _cumulative_mean_normalized(diff)

    best = -1
    for lag in range(min_period, max_period):
        if cmnd[lag] < threshold:
            # Walk down to the bottom of this dip.
            while lag + 1 < max_period and cmnd[lag + 1] < cmnd[lag]:
                lag += 1
            best = lag
            break

    if best < 0:
        seg = cmnd[min_period:max_period]
        best = int(np.argmin(seg)) + min_period
        if float(cmnd[best]) >= 1.0:
            # Flat or rising everywhere: nothing periodic in range.
            return NO_PITCH

    min_diff = float(cmnd[best])
    period = float(best)
    if 0 < best < max_period - 1:
        # Refine on the raw difference, not the normalized curve; its minimum
        # can sit one lag away from the normalized one.
        centre = best
        if centre > 1 and diff[centre - 1] < diff[centre]:
            centre -= 1
        elif centre + 2 < max_period and diff[centre + 1] < diff[centre]:
            centre += 1
        y0, y1, y2 = float(diff[centre - 1]), float(diff[centre]), float(diff[centre + 1])
        denom = y0 - 2.0 * y1 + y2
        if abs(denom) > 1e-12:
            shift = 0.5 * (y0 - y2) / denom
            if math.isfinite(shift) and abs(shift) < 1.0:
                period = centre + shift

    if period <= 0.0:
        return NO_PITCH
    hz = float(sample_rate) / period
    conf = float(min(1.0, max(0.0, 1.0 - min_diff)))
    if not math.isfinite(hz) or not math.isfinite(conf):
        return NO_PITCH
    return PitchEstimate(hz, conf)


def _difference(x: np.ndarray, max_lag: int, weights: np.ndarray | None = None) -> np.ndarray:
    # d(lag) = sum_{i < n-lag} w[i] w[i+lag] (x[i] - x[i+lag])^2
    #        = sum w[i] x[i]^2 w[i+lag] + sum w[i] w[i+lag] x[i+lag]^2 - 2 r_wx(lag)
    # with w = 1 when unweighted. Every term is a cross-correlation done by FFT.
    n = int(x.size)
    w = np.ones(n) if weights is None else weights
    size = 1 << int(2 * n - 1).bit_length()

    def xcorr(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        # sum_i a[i] * b[i + lag]
        return np.fft.irfft(np.conj(a) * b, n=size)[:max_lag]

    fw = np.fft.rfft(w, n=size)
    fe = np.fft.rfft(w * x * x, n=size)
    fx = np.fft.rfft(w * x, n=size)
    d = xcorr(fe, fw) + xcorr(fw, fe) - 2.0 * xcorr(fx, fx)
    if weights is not None:
        # Undo the shrinking window overlap so long lags are not favoured.
        overlap = xcorr(fw, fw)
        d = d * (overlap[0] / np.maximum(overlap, 1e-12))
    # FFT round-off can leave tiny negatives where d is ~0.
    return np.maximum(d, 0.0)


def _cumulative_mean_normalized(diff: np.ndarray) -> np.ndarray:
    out = np.ones_like(diff)
    if diff.size < 2:
        return out
    running = np.cumsum(diff[1:])
    lags = np.arange(1, diff.size, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        norm = diff[1:] * lags / running
    out[1:] = np.where(running > 0.0, norm, 1.0)
    return out


def hps_pitch(
    spectrum_db: np.ndarray,
    sample_rate: int,
    *,
    harmonics: int = HPS_HARMONICS,
    db_floor: float = DB_FLOOR,
    db_ceiling: float = DB_CEILING,
) -> PitchEstimate:
    """
    Harmonic Product Spectrum estimate from a dB magnitude spectrum.

    Every candidate bin i in [1, len/harmonics) is scored by the product of
    the linear amplitudes at i, 2i, ..., harmonics*i. The best bin is the
    fundamental; its confidence comes from the original dB level at that bin.
    """
    db = np.asarray(spectrum_db, dtype=np.float64)
    bins = int(db.size)
    if bins == 0 or sample_rate <= 0 or harmonics < 1:
        return NO_PITCH
    search = bins // harmonics
    if search < 2:
        return NO_PITCH

    db = np.where(np.isfinite(db), db, db_floor)
    amp = np.power(10.0, db / 20.0)

    product = amp[1:search].copy()
    idx = np.arange(1, search)
    for h in range(2, harmonics + 1):
        hi = idx * h
        # Harmonics past the end of the spectrum do not contribute.
        product *= np.where(hi < bins, amp[np.minimum(hi, bins - 1)], 1.0)

    peak = int(np.argmax(product)) + 1
    fft_size = 2 * bins
    hz = peak * (float(sample_rate) / fft_size)
    if not (hz > 0.0 and math.isfinite(hz)):
        return NO_PITCH

    span = db_ceiling - db_floor
    conf = (float(db[peak]) - db_floor) / span if span > 0 else 0.0
    return PitchEstimate(hz, float(min(1.0, max(0.0, conf))))


def fuse_estimates(
    autocorr: PitchEstimate,
    hps: PitchEstimate,
    *,
    confidence_min: float = FUSION_CONFIDENCE_MIN,
    agreement_ratio: float = AGREEMENT_RATIO,
    autocorr_weight: float = AUTOCORRELATION_WEIGHT,
) -> FusedPitch:
    """
    Combine the two estimates. The autocorrelation estimate leads: below
    ``confidence_min`` nothing is reported, and HPS only nudges the result
    when both agree within ``agreement_ratio``.
    """
    conf = float(min(1.0, max(0.0, autocorr.confidence)))
    ac_hz = autocorr.frequency
    if ac_hz is None or ac_hz <= 0.0 or conf <= confidence_min:
        return PitchEstimate(None, conf)

    hz = ac_hz
    if hps.frequency is not None and hps.frequency > 0.0:
        if abs(ac_hz - hps.frequency) / ac_hz < agreement_ratio:
            hz = autocorr_weight * ac_hz + (1.0 - autocorr_weight) * hps.frequency
    return PitchEstimate(float(hz), conf)
