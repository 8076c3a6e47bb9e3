# run.py
import os
from betbot import create_app

# Get config name from environment variable or default to 'development'
config_name = os.getenv('FLASK_ENV', 'development')
app = create_app(config_name)


# --- Main execution ---
if __name__ == '__main__':
    # Note: app.run() is generally used for development server.
    # For production, use a WSGI server like Gunicorn or Waitress.
    # The Flask CLI commands like 'flask settle-match' work independently.
    app.run(host='0.0.0.0', port=5000)
