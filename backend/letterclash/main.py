from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Letter Clash game server!'})


@main.route('/health')
def health():
    registry = current_app.extensions['letterclash']['registry']
    return jsonify({'ok': True, 'rooms': len(registry)})
