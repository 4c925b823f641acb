from toonify.models.image_job import ImageJob  # noqa: F401
