import dataclasses
import subprocess
from logging import Logger
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Optional
from uuid import uuid4

from mediax.directive import Directives
from mediax.errors import AudioTransformFailed
from mediax.mediaformat import DEFAULT_BITRATE, MediaFormat, find_audio_format
from mediax.process.model import Transformed

STDERR_TAIL = 2000


@dataclasses.dataclass(frozen=True)
class Transcoded:
  body: bytes


@dataclasses.dataclass(frozen=True)
class TranscodeFailure:
  reason: str


def compute_bitrate(
    bitrate: Optional[str],
    target: Optional[MediaFormat],
    input_ext: str,
) -> Optional[str]:
  """Return the bitrate to pass to ffmpeg, or None to leave it unset."""
  if target is None:
    target = find_audio_format(input_ext.lstrip('.').lower())

  if target is None or not target.supports_bitrate:
    return None

  return bitrate or DEFAULT_BITRATE


def build_command(
    ffmpeg: str,
    input_path: str,
    output_path: str,
    target: Optional[MediaFormat],
    bitrate: Optional[str],
) -> list[str]:
  cmd = [ffmpeg, '-hide_banner', '-nostdin', '-y', '-i', input_path]

  if target is not None and target.codec is not None:
    cmd += ['-acodec', target.codec]

  if bitrate is not None:
    cmd += ['-b:a', bitrate]

  cmd.append(output_path)
  return cmd


def transcode(
    log: Logger,
    ffmpeg: str,
    body: bytes,
    input_ext: str,
    target: Optional[MediaFormat],
    bitrate: Optional[str],
) -> Transcoded | TranscodeFailure:
  output_ext = input_ext if target is None else f'.{target.format}'

  try:
    with TemporaryDirectory(prefix='mediax-') as tmpdir:
      input_path = str(Path(tmpdir, f'{uuid4()}{input_ext}'))
      output_path = str(Path(tmpdir, f'{uuid4()}{output_ext}'))
      Path(input_path).write_bytes(body)

      cmd = build_command(ffmpeg, input_path, output_path, target, bitrate)
      log.debug({
          'message': 'audio conversion started',
          'command': ' '.join(cmd),
      })

      try:
        proc = subprocess.run(cmd, capture_output=True, check=False)
      except OSError as e:
        return TranscodeFailure(f'failed to run {ffmpeg}: {e}')

      if proc.returncode != 0:
        stderr = proc.stderr.decode(errors='replace')[-STDERR_TAIL:]
        return TranscodeFailure(f'{ffmpeg} exited with {proc.returncode}: {stderr}')

      try:
        return Transcoded(Path(output_path).read_bytes())
      except OSError as e:
        return TranscodeFailure(f'no output produced: {e}')
  except OSError as e:
    return TranscodeFailure(f'temporary file failed: {e}')


def transform_audio(
    log: Logger,
    ffmpeg: str,
    body: bytes,
    content_type: str,
    key: str,
    directives: Directives,
) -> Transformed:
  target = find_audio_format(directives.format)
  input_ext = Path(key).suffix
  bitrate = compute_bitrate(directives.bitrate, target, input_ext)

  match transcode(log, ffmpeg, body, input_ext, target, bitrate):
    case Transcoded(body=transcoded):
      log.debug({'message': 'audio conversion completed', 'size': len(transcoded)})
      return Transformed(transcoded, content_type if target is None else target.content_type)
    case TranscodeFailure(reason=reason):
      raise AudioTransformFailed(reason)
    case _:
      raise Exception('system error')
