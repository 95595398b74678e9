import logging

import uvicorn
from mealweek.api.api_run import app
from mealweek.utilities.config import APP_HOST, APP_PORT, DEBUG, LOG_LEVEL, REMOTE_URL
from mealweek.utilities.network import get_local_ip, remote_host


if __name__ == "__main__":
    logging.basicConfig(level="DEBUG" if DEBUG else LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    host = APP_HOST
    port = APP_PORT
    local_url = f"http://localhost:{port}"
    local_ip = get_local_ip()
    lan_url = f"http://{local_ip}:{port}"
    print(f"Uvicorn running on {local_url} (Press CTRL+C to quit)")
    if local_ip not in ("127.0.0.1", "localhost"):
        print(f"Accessible from other devices at: {lan_url}")
    print(f"Remote store: {remote_host(REMOTE_URL) or 'not configured'}")
    uvicorn.run(app, host=host, port=port)
