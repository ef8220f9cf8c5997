from flask import Blueprint

functions_bp = Blueprint('functions', __name__)

from . import routes
