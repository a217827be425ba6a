"""
Wrapper around the external image quality tool (``arcoreimg eval-img``).

The tool prints a 0-100 tracking-suitability score as free-form text. We run
it as a subprocess with a bounded timeout and pull the score out with a
best-effort pattern match. When no score can be had, the configured
``FallbackPolicy`` decides: reject the image, or substitute a configured score
and mark the result unverified.
"""

import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np

from .capture import encode_png
from .config import FallbackPolicy, ValidatorConfig
from .errors import ValidatorFailed

logger = logging.getLogger(__name__)

_SCORE_RE = re.compile(r'score[:\s]+(\d+)', re.IGNORECASE)
_NUMBER_RE = re.compile(r'(\d+)')


@dataclass
class ValidationOutcome:
    score: int
    verified: bool = True
    detail: str = ''

    def passes(self, threshold: int) -> bool:
        return self.score >= threshold


def parse_score(stdout: str, stderr: str = '') -> Optional[int]:
    """
    Extract a score from validator output.

    Prefers an explicit ``score: N`` in stdout, then stderr; otherwise takes
    the first integer found. Anything outside 0..100 is treated as no score.
    """
    match = _SCORE_RE.search(stdout or '') or _SCORE_RE.search(stderr or '')
    if match is None:
        match = _NUMBER_RE.search(stdout or '') or _NUMBER_RE.search(stderr or '')
    if match is None:
        return None

    score = int(match.group(1))
    if not 0 <= score <= 100:
        return None
    return score


class ImageQualityValidator:
    """Scores marker images for AR tracking suitability."""

    def __init__(self, config: Optional[ValidatorConfig] = None):
        self.config = config or ValidatorConfig()

    def evaluate(self, image_path: Union[str, Path]) -> ValidationOutcome:
        """
        Score an image file.

        Args:
            image_path: PNG/JPEG on disk

        Returns:
            ValidationOutcome with the parsed (or substituted) score

        Raises:
            ValidatorFailed: tool failure under the ``reject`` policy
        """
        try:
            score = self._run(Path(image_path))
        except ValidatorFailed as exc:
            return self._fallback(exc)

        logger.info(f"Validator scored {Path(image_path).name}: {score}")
        return ValidationOutcome(score=score)

    def evaluate_image(self, pixels: np.ndarray) -> ValidationOutcome:
        """Write ``pixels`` to a temporary PNG, score it, remove the file."""
        fd, tmp_name = tempfile.mkstemp(suffix='.png', prefix='marker_')
        try:
            with os.fdopen(fd, 'wb') as fh:
                fh.write(encode_png(pixels))
            return self.evaluate(tmp_name)
        finally:
            try:
                os.remove(tmp_name)
            except OSError as exc:
                logger.warning(f"Failed to clean up temp image {tmp_name}: {exc}")

    def _run(self, image_path: Path) -> int:
        cmd = [self.config.command, 'eval-img', f'--input_image_path={image_path}']
        logger.debug(f"Validator command: {' '.join(cmd)}")

        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise ValidatorFailed(f"Validator executable not found: {self.config.command}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ValidatorFailed(
                f"Validator timed out after {self.config.timeout_seconds}s"
            ) from exc
        except OSError as exc:
            raise ValidatorFailed(f"Validator could not be started: {exc}") from exc

        logger.debug(f"Validator stdout: {proc.stdout!r}")
        logger.debug(f"Validator stderr: {proc.stderr!r}")

        if proc.returncode != 0:
            raise ValidatorFailed(
                f"Validator exited with status {proc.returncode}",
                payload={'stderr': (proc.stderr or '').strip()[:500]},
            )

        score = parse_score(proc.stdout, proc.stderr)
        if score is None:
            raise ValidatorFailed("Could not read a score from validator output")
        return score

    def _fallback(self, exc: ValidatorFailed) -> ValidationOutcome:
        if self.config.fallback_policy == FallbackPolicy.UNVERIFIED:
            logger.warning(
                f"Validator failed ({exc.message}); substituting score "
                f"{self.config.fallback_score} and marking unverified"
            )
            return ValidationOutcome(
                score=self.config.fallback_score,
                verified=False,
                detail=exc.message,
            )

        logger.error(f"Validator failed: {exc.message}")
        raise exc
