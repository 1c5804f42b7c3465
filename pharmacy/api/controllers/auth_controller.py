from datetime import datetime
from flask import request, jsonify, current_app
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    get_jwt_identity, get_jwt
)
from pharmacy.extensions import db
from pharmacy.models.user_models import User, Role
from pharmacy.models.system_models import RevokedToken
from pharmacy.utils.encryption_util import encryptor

PASSWORD_MAX_AGE_DAYS = 90

def register_user():
    """
    Creates a staff user with encrypted PII and hashed lookups.

    The very first user may register freely and becomes the admin; after
    that only an authenticated admin can create accounts.
    """
    data = request.get_json(silent=True) or {}

    bootstrap = User.query.first() is None
    if not bootstrap:
        identity = get_jwt_identity()
        if identity is None:
            return jsonify({'error': 'Authentication required'}), 401
        caller = db.session.get(User, int(identity))
        if not caller or caller.role.name != 'admin':
            return jsonify({'error': 'Only administrators can register users', 'redirect': '/dashboard'}), 403

    required_fields = ['username', 'email', 'password']
    if any(not data.get(field) for field in required_fields):
        return jsonify({'error': 'Missing required fields: username, email, password'}), 400

    username = data['username']
    email = data['email']

    if User.query.filter_by(username_hash=User.create_hash(username)).first():
        return jsonify({'error': 'Username already exists'}), 409
    if User.query.filter_by(email_hash=User.create_hash(email)).first():
        return jsonify({'error': 'Email already exists'}), 409

    role_name = 'admin' if bootstrap else data.get('role', 'staff')
    role = Role.query.filter_by(name=role_name).first()
    if not role:
        return jsonify({'error': 'Invalid role'}), 400

    user = User(
        username=encryptor.encrypt(username),
        email=encryptor.encrypt(email),
        username_hash=User.create_hash(username),
        email_hash=User.create_hash(email),
        role_id=role.id,
        hospital_id=data.get('hospital_id')
    )
    try:
        user.set_password(data['password'])
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    db.session.add(user)
    db.session.commit()
    current_app.logger.info(f"User {user.id} registered with role {role.name}")
    return jsonify({'message': 'User created successfully', 'user_id': user.id}), 201

def login_user():
    data = request.get_json(silent=True)
    if not data or not data.get('username') or not data.get('password'):
        return jsonify({'error': 'Username and password required'}), 400

    user = User.query.filter_by(username_hash=User.create_hash(data['username'])).first()

    if not user or not user.check_password(data['password']):
        if user and user.account_locked:
            return jsonify({'error': 'Account locked due to multiple failed attempts'}), 423
        return jsonify({'error': 'Invalid credentials'}), 401
    if not user.is_active:
        return jsonify({'error': 'Account deactivated'}), 403
    if (datetime.utcnow() - user.password_changed_at).days > PASSWORD_MAX_AGE_DAYS:
        user.must_change_password = True
        db.session.commit()
        return jsonify({'error': 'Password expired. Please change your password.'}), 403

    # Identity is the user id only; no PII goes into the token
    access_token = create_access_token(
        identity=str(user.id), additional_claims={'role': user.role.name}
    )
    refresh_token = create_refresh_token(identity=str(user.id))

    return jsonify({
        'access_token': access_token,
        'refresh_token': refresh_token,
        'user': user.to_dict(),
        # Where the client should go next
        'redirect': '/select-hospital' if user.needs_hospital else '/dashboard'
    }), 200

def logout_user():
    db.session.add(RevokedToken(jti=get_jwt()['jti']))
    db.session.commit()
    return jsonify({'message': 'Successfully logged out'}), 200

def refresh_token():
    user_id = get_jwt_identity()
    user = db.session.get(User, int(user_id))
    if not user or not user.is_active:
        return jsonify({'error': 'User not found or inactive'}), 403

    access_token = create_access_token(
        identity=user_id, additional_claims={'role': user.role.name}
    )
    return jsonify({'access_token': access_token}), 200

def change_user_password():
    user = db.session.get(User, int(get_jwt_identity()))
    data = request.get_json(silent=True) or {}

    if not data.get('current_password') or not data.get('new_password'):
        return jsonify({'error': 'Current and new passwords required'}), 400
    if not user.check_password(data['current_password']):
        return jsonify({'error': 'Invalid current password'}), 401

    try:
        user.set_password(data['new_password'])
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    user.must_change_password = False
    db.session.commit()
    return jsonify({'message': 'Password changed successfully'}), 200
