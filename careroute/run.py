"""
CareRoute Backend Runner
"""

import uvicorn
from careroute.core.config import Config


def main():
    """Run the CareRoute backend server."""
    uvicorn.run(
        "careroute.api.main:app",
        host=Config.HOST,
        port=Config.PORT,
        reload=Config.DEBUG,
        log_level=Config.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
