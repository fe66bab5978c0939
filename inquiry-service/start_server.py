import os
import sys
import logging
import uvicorn


def start():
    try:
        print("🔍 [STARTUP] Initializing server script...", flush=True)
        logging.basicConfig(
            level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        # 1. Get PORT from environment
        port_env = os.environ.get("PORT")
        print(f"🔍 [STARTUP] Environment PORT: '{port_env}'", flush=True)

        # 2. Default to 8080 if not set
        if not port_env or not port_env.strip():
            print("⚠️ [STARTUP] PORT env var is empty or missing. Defaulting to 8080.", flush=True)
            port = 8080
        else:
            try:
                port = int(port_env)
            except ValueError:
                print(f"❌ [STARTUP] PORT env var is not a number: '{port_env}'. Defaulting to 8080.", flush=True)
                port = 8080

        host = os.environ.get("HOST", "0.0.0.0")
        print(f"🚀 [STARTUP] Configured listener: {host}:{port}", flush=True)

        # 3. Import app (engine is built in the lifespan)
        print("🔍 [STARTUP] Importing FastAPI app from inquiry_engine/main.py...", flush=True)
        sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
        from inquiry_engine.main import app
        print(f"✅ [STARTUP] App object loaded: {id(app)}", flush=True)

        # 4. Start Uvicorn
        print(f"🚀 [STARTUP] Launching Uvicorn on {host}:{port}...", flush=True)
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            proxy_headers=True,
            forwarded_allow_ips="*",
            timeout_keep_alive=30,
            access_log=True
        )

    except BaseException as e:
        print(f"❌ [FATAL] Server startup failed: {e}", flush=True)
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    start()
