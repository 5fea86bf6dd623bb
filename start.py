#!/usr/bin/env python3
"""
NeoMed Backend Server Starter
Simple script to start the FastAPI backend server
"""

import sys
import os

# Add the parent directory to the path to ensure imports work correctly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

def main():
    """Start the Uvicorn server"""
    import uvicorn

    # Get port from environment variable (for hosted deployments) or default to 8000
    port = int(os.environ.get("PORT", 8000))

    # Check if running in production
    is_production = os.environ.get("APP_ENV", "development") == "production"

    print("\n" + "="*60)
    print("  Starting NeoMed Backend Server")
    print("="*60 + "\n")

    print(f"Environment: {'Production' if is_production else 'Development'}")
    print(f"Server will run on: http://0.0.0.0:{port}")
    print(f"Health Check: http://0.0.0.0:{port}/health")
    print(f"Mounted prefixes: {os.environ.get('MOUNT_PREFIXES', '/.netlify/functions/api,/api')}")
    print("\n" + "="*60)
    print("  Press CTRL+C to stop the server")
    print("="*60 + "\n")

    try:
        uvicorn.run(
            "neomed.main:app",
            host="0.0.0.0",
            port=port,
            reload=not is_production,  # Only reload in development
            log_level="info",
            access_log=False  # requests are logged by the app as JSON
        )
    except KeyboardInterrupt:
        print("\n\n" + "="*60)
        print("  Server stopped by user")
        print("="*60 + "\n")
        sys.exit(0)
    except Exception as e:
        print(f"\nError starting server: {e}")
        print("\nTroubleshooting:")
        print("  1. Check DATABASE_URL (or NETLIFY_DATABASE_URL) in .env")
        print("  2. Install the package: pip install -e .")
        print(f"  3. Check if port {port} is available\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
