from flask import Blueprint

images_bp = Blueprint("images", __name__)

from toonify.blueprints.images import views  # noqa: F401, E402
