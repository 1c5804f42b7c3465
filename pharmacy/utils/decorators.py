from functools import wraps
from flask import request, current_app, jsonify, make_response
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from sqlalchemy.exc import SQLAlchemyError
from pharmacy.extensions import db
from pharmacy.models.system_models import AuditLog
from pharmacy.models.user_models import User

SELECT_HOSPITAL_PATH = '/select-hospital'
DASHBOARD_PATH = '/dashboard'


def get_current_user():
    """Loads the user behind the JWT of the current request, or None."""
    verify_jwt_in_request()
    identity = get_jwt_identity()
    if identity is None:
        return None
    return db.session.get(User, int(identity))


def _current_user_id():
    try:
        identity = get_jwt_identity()
    except RuntimeError:
        # No JWT on this request (login, registration bootstrap)
        return None
    return int(identity) if identity is not None else None


def audit_log(action, resource):
    """Records the outcome of a guarded action in AuditLog and the AUDIT logger."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_id = _current_user_id()
            resource_id = next((str(v) for k, v in kwargs.items() if k.endswith('_id')), None)
            ip_address = request.remote_addr
            user_agent = request.headers.get('User-Agent')

            try:
                response = make_response(f(*args, **kwargs))

                success = response.status_code < 400
                details = f"Request completed. Status: {response.status_code}"

                # New users only have an id once the view has run
                if action == "USER_REGISTRATION" and success and response.is_json:
                    resource_id = str(response.get_json().get('user_id'))

                db.session.add(AuditLog(
                    user_id=user_id,
                    action=action,
                    resource=resource,
                    resource_id=resource_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    success=success,
                    status_code=response.status_code,
                    details=details
                ))
                db.session.commit()
                current_app.audit_logger.info(
                    f"Action='{action}', Resource='{resource}', ResourceID='{resource_id}', "
                    f"UserID='{user_id}', Success='{success}', Details='{details}'"
                )
                return response

            except Exception as e:
                db.session.rollback()
                details = f"An error occurred: {str(e)}"
                try:
                    # Errors with a registered handler become that handler's response
                    handled = make_response(current_app.handle_user_exception(e))
                except Exception:
                    handled = None
                status_code = handled.status_code if handled is not None else 500

                try:
                    db.session.add(AuditLog(
                        user_id=user_id,
                        action=action,
                        resource=resource,
                        resource_id=resource_id,
                        ip_address=ip_address,
                        user_agent=user_agent,
                        success=False,
                        status_code=status_code,
                        details=details
                    ))
                    db.session.commit()
                except SQLAlchemyError as db_error:
                    current_app.audit_logger.error(f"Failed to log audit entry due to DB error: {db_error}")
                    db.session.rollback()

                current_app.audit_logger.error(
                    f"Action='{action}', Resource='{resource}', UserID='{user_id}', Success='False', "
                    f"Status='{status_code}', Details='{details}'"
                )
                if handled is None:
                    raise
                return handled

        return decorated_function
    return decorator


def require_permission(resource, action):
    """Checks the authenticated user's role grants `action` on `resource`."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()

            if not user or not user.is_active:
                return jsonify({'error': 'User not found or inactive'}), 403

            # Admins hold every permission
            if user.role.name == 'admin':
                return f(*args, **kwargs)

            has_permission = any(
                p.resource == resource and p.action == action
                for p in user.role.permissions
            )
            if not has_permission:
                return jsonify({'error': 'Permission denied'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def require_role(*role_names):
    """Restricts a route to the given roles, pointing everyone else at the dashboard."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()

            if not user or not user.is_active:
                return jsonify({'error': 'User not found or inactive'}), 403

            if user.role.name not in role_names:
                return jsonify({
                    'error': 'You do not have access to this area',
                    'redirect': DASHBOARD_PATH
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def hospital_selection_required(f):
    """Doctors and nurses must pick a hospital before using any other route."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()

        if not user or not user.is_active:
            return jsonify({'error': 'User not found or inactive'}), 403

        if user.needs_hospital:
            return jsonify({
                'error': 'Select a hospital before continuing',
                'redirect': SELECT_HOSPITAL_PATH
            }), 409

        return f(*args, **kwargs)
    return decorated_function
