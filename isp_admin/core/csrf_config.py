"""
CSRF protection instance.

Initialized in create_app(); the JSON API authenticates with Bearer tokens,
so API routes are marked ``@csrf.exempt``:

    from isp_admin.core.csrf_config import csrf

    @bp.route("/", methods=["POST"])
    @csrf.exempt
    def create():
        ...
"""

from flask_wtf.csrf import CSRFProtect

csrf = CSRFProtect()
