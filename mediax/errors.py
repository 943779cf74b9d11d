class ConfigError(Exception):
  pass


class MediaxError(Exception):
  """Terminal failure of one compute request.

  ``message`` is what the client sees in the 500 response body; the class
  name tells operators which stage failed.
  """
  message = 'Request failed'

  def __init__(self, reason: str = '', message: str | None = None):
    super().__init__(reason or self.message)
    self.reason = reason
    if message is not None:
      self.message = message


class Unauthorized(MediaxError):
  message = 'Request unauthorized'


class MethodNotAllowed(MediaxError):
  message = 'Only GET method is supported'


class OriginDownloadFailed(MediaxError):
  message = 'Could not download origin file from S3'


class TransformFailed(MediaxError):
  message = 'Transforming media failed'


class ImageTransformFailed(TransformFailed):
  message = 'Transforming image failed'


class AudioTransformFailed(TransformFailed):
  message = 'Transforming audio failed'


class CacheUploadFailed(MediaxError):
  message = 'Could not upload transformed file to S3'
