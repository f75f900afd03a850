from lenstrack import create_app, db
import os

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

# Tables are created on startup; seeding stays a manual `flask seed-offers` step
with app.app_context():
    try:
        import lenstrack.offers.models  # noqa: F401
        db.create_all()
    except Exception as e:
        app.logger.error(f"Startup table check failed: {e}")

if __name__ == "__main__":
    app.run()
