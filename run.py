# run.py
import os
from certledger.app import create_app

# Starts the Flask development server without going through 'flask run'.

if __name__ == "__main__":
    os.environ.setdefault('FLASK_APP', 'certledger.app')

    app = create_app()

    print("=" * 60)
    print(">>> Starting CertLedger development server")
    print("=" * 60)

    app.run(debug=app.config.get('DEBUG', False), host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
