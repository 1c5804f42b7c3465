from flask import request, jsonify, current_app
from pharmacy.extensions import db
from pharmacy.models.user_models import User, Role
from pharmacy.models.hospital_models import Hospital
from pharmacy.utils.decorators import get_current_user, DASHBOARD_PATH


def get_current_user_details():
    user = get_current_user()
    if not user:
        return jsonify({'error': 'User not found'}), 404
    return jsonify(user.to_dict()), 200


def get_all_users():
    """Lists every user for the admin screen, newest first."""
    users = User.query.order_by(User.created_at.desc()).all()
    return jsonify({'users': [u.to_dict() for u in users]}), 200


def update_user_role(user_id):
    data = request.get_json(silent=True) or {}
    if not data.get('role'):
        return jsonify({'error': 'role is required'}), 400

    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404

    role = Role.query.filter_by(name=data['role']).first()
    if not role:
        return jsonify({'error': 'Invalid role'}), 400

    current = get_current_user()
    if current.id == user.id and role.name != 'admin':
        return jsonify({'error': 'Administrators cannot remove their own admin role'}), 409

    user.role = role
    # Only doctors and nurses are tied to a hospital
    if role.name not in ('doctor', 'nurse'):
        user.hospital_id = None
    db.session.commit()
    current_app.logger.info(f"User {user.id} role changed to {role.name} by user {current.id}")
    return jsonify({'message': 'Role updated', 'user': user.to_dict()}), 200


def get_hospitals():
    hospitals = Hospital.query.order_by(Hospital.name).all()
    return jsonify({'hospitals': [h.to_dict() for h in hospitals]}), 200


def select_hospital():
    """Stores the hospital a doctor or nurse is working at."""
    user = get_current_user()
    if user.role.name == 'admin':
        return jsonify({
            'error': 'Administrators do not select a hospital',
            'redirect': DASHBOARD_PATH
        }), 403

    data = request.get_json(silent=True) or {}
    hospital_id = data.get('hospital_id')
    if hospital_id is None:
        return jsonify({'error': 'hospital_id is required'}), 400

    hospital = db.session.get(Hospital, hospital_id)
    if not hospital:
        return jsonify({'error': 'Hospital not found'}), 404

    user.hospital_id = hospital.id
    db.session.commit()
    return jsonify({
        'message': 'Hospital updated successfully.',
        'user': user.to_dict(),
        'redirect': DASHBOARD_PATH
    }), 200
