import os

from chemstock import create_app

app = create_app()

if __name__ == "__main__":
    # Runs on all interfaces so the browser client can reach it from other devices
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5000)), debug=True)
