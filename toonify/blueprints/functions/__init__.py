from flask import Blueprint

functions_bp = Blueprint("functions", __name__)

from toonify.blueprints.functions import views  # noqa: F401, E402
