"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

"""

from ampere import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
