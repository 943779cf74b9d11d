import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

import pytest

from mediax.directive import Directives
from mediax.errors import AudioTransformFailed
from mediax.mediaformat import AUDIO_FORMATS, MediaFormat

from . import audio
from .audio import build_command, compute_bitrate, transcode, transform_audio

log = logging.getLogger(__name__)

FLAC_MIME = 'audio/flac'
MP3_MIME = 'audio/mpeg'
WAV_MIME = 'audio/wav'

SOURCE_BODY = b'source audio'
TRANSCODED_BODY = b'transcoded audio'


class FakeRun:

  def __init__(self, returncode: int = 0, stderr: bytes = b'', write_output: bool = True):
    self.returncode = returncode
    self.stderr = stderr
    self.write_output = write_output
    self.cmd: list[str] = []
    self.input = b''

  def __call__(
      self,
      cmd: list[str],
      capture_output: bool,
      check: bool,
  ) -> subprocess.CompletedProcess:
    self.cmd = cmd
    self.input = Path(self.input_path).read_bytes()
    if self.returncode == 0 and self.write_output:
      Path(self.output_path).write_bytes(TRANSCODED_BODY)
    return subprocess.CompletedProcess(cmd, self.returncode, b'', self.stderr)

  @property
  def input_path(self) -> str:
    return self.cmd[self.cmd.index('-i') + 1]

  @property
  def output_path(self) -> str:
    return self.cmd[-1]


@pytest.fixture
def fake_run(monkeypatch: pytest.MonkeyPatch) -> FakeRun:
  fake = FakeRun()
  monkeypatch.setattr(audio.subprocess, 'run', fake)
  return fake


@pytest.mark.parametrize(
    'bitrate,target,input_ext,expected', [
        (None, 'mp3', '.flac', '64k'),
        ('128k', 'mp3', '.flac', '128k'),
        ('128k', 'aac', '.wav', '128k'),
        ('128k', 'flac', '.mp3', None),
        (None, 'wav', '.mp3', None),
        (None, None, '.mp3', '64k'),
        ('96k', None, '.MP3', '96k'),
        ('96k', None, '.flac', None),
        ('96k', None, '.ogg', None),
        ('96k', None, '', None),
    ])
def test_compute_bitrate(
    bitrate: Optional[str],
    target: Optional[str],
    input_ext: str,
    expected: Optional[str],
) -> None:
  fmt: Optional[MediaFormat] = None if target is None else AUDIO_FORMATS[target]
  assert expected == compute_bitrate(bitrate, fmt, input_ext)


def test_build_command() -> None:
  assert [
      'ffmpeg', '-hide_banner', '-nostdin', '-y', '-i', 'in.flac', '-acodec', 'libmp3lame', '-b:a',
      '64k', 'out.mp3'
  ] == build_command('ffmpeg', 'in.flac', 'out.mp3', AUDIO_FORMATS['mp3'], '64k')

  assert [
      'ffmpeg', '-hide_banner', '-nostdin', '-y', '-i', 'in.mp3', 'out.mp3'
  ] == build_command('ffmpeg', 'in.mp3', 'out.mp3', None, None)


def test_flac_to_mp3_uses_default_bitrate(fake_run: FakeRun) -> None:
  result = transform_audio(
      log, 'ffmpeg', SOURCE_BODY, FLAC_MIME, 'music/song.flac', Directives(format='mp3'))

  assert MP3_MIME == result.content_type
  assert TRANSCODED_BODY == result.body
  assert SOURCE_BODY == fake_run.input
  assert fake_run.input_path.endswith('.flac')
  assert fake_run.output_path.endswith('.mp3')
  assert ['-acodec', 'libmp3lame'] == fake_run.cmd[6:8]
  assert ['-b:a', '64k'] == fake_run.cmd[8:10]


def test_flac_target_never_gets_bitrate(fake_run: FakeRun) -> None:
  result = transform_audio(
      log, 'ffmpeg', SOURCE_BODY, MP3_MIME, 'music/song.mp3',
      Directives(format='flac', bitrate='128k'))

  assert FLAC_MIME == result.content_type
  assert '-b:a' not in fake_run.cmd
  assert ['-acodec', 'flac'] == fake_run.cmd[6:8]


def test_bitrate_only_keeps_container(fake_run: FakeRun) -> None:
  result = transform_audio(
      log, 'ffmpeg', SOURCE_BODY, MP3_MIME, 'music/song.mp3', Directives(bitrate='128k'))

  assert MP3_MIME == result.content_type
  assert '-acodec' not in fake_run.cmd
  assert ['-b:a', '128k'] == fake_run.cmd[6:8]
  assert fake_run.output_path.endswith('.mp3')


def test_image_format_name_is_not_an_audio_target(fake_run: FakeRun) -> None:
  result = transform_audio(
      log, 'ffmpeg', SOURCE_BODY, WAV_MIME, 'music/song.wav', Directives(format='webp'))

  assert WAV_MIME == result.content_type
  assert '-acodec' not in fake_run.cmd
  assert '-b:a' not in fake_run.cmd
  assert fake_run.output_path.endswith('.wav')


def test_temporary_files_are_removed(fake_run: FakeRun) -> None:
  transform_audio(log, 'ffmpeg', SOURCE_BODY, FLAC_MIME, 'song.flac', Directives(format='mp3'))

  assert not Path(fake_run.input_path).exists()
  assert not Path(fake_run.output_path).exists()


def test_engine_failure(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(audio.subprocess, 'run', FakeRun(returncode=1, stderr=b'Invalid data'))

  with pytest.raises(AudioTransformFailed) as e:
    transform_audio(log, 'ffmpeg', SOURCE_BODY, FLAC_MIME, 'song.flac', Directives(format='mp3'))

  assert 'Invalid data' in e.value.reason
  assert 'Transforming audio failed' == e.value.message


def test_engine_without_output(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(audio.subprocess, 'run', FakeRun(write_output=False))

  with pytest.raises(AudioTransformFailed):
    transform_audio(log, 'ffmpeg', SOURCE_BODY, FLAC_MIME, 'song.flac', Directives(format='mp3'))


def test_engine_missing() -> None:
  with pytest.raises(AudioTransformFailed):
    transform_audio(
        log, '/nonexistent/ffmpeg', SOURCE_BODY, FLAC_MIME, 'song.flac', Directives(format='mp3'))


def test_temporary_directory_unavailable(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, fake_run: FakeRun) -> None:
  monkeypatch.setattr(tempfile, 'tempdir', str(tmp_path / 'missing'))

  with pytest.raises(AudioTransformFailed) as e:
    transform_audio(log, 'ffmpeg', SOURCE_BODY, FLAC_MIME, 'song.flac', Directives(format='mp3'))

  assert 'temporary file failed' in e.value.reason
  assert [] == fake_run.cmd


@pytest.mark.skipif(shutil.which('ffmpeg') is None, reason='ffmpeg is not installed')
def test_transcode_with_ffmpeg(tmp_path: Path) -> None:
  wav = tmp_path / 'tone.wav'
  subprocess.run(
      [
          'ffmpeg', '-hide_banner', '-nostdin', '-y', '-f', 'lavfi', '-i',
          'sine=frequency=440:duration=1', str(wav)
      ],
      capture_output=True,
      check=True)

  result = transcode(log, 'ffmpeg', wav.read_bytes(), '.wav', AUDIO_FORMATS['flac'], None)

  assert isinstance(result, audio.Transcoded)
  assert result.body.startswith(b'fLaC')
