"""
Entry point for the pharmacy back-office API.
"""
import os

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from pharmacy import create_app

app = create_app(os.environ.get('FLASK_CONFIG', 'default'))

if __name__ == '__main__':
    print("Starting server with Flask dev server...")
    app.run(host='127.0.0.1', port=5000, debug=app.config.get('DEBUG', False))
