import logging
import os

from coaching_assistant.config import Config


def main():
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    missing = Config.validate()
    if missing:
        logging.getLogger(__name__).warning(
            "Model calls will fail until configured: %s", "; ".join(missing)
        )

    import uvicorn
    uvicorn.run(
        "coaching_assistant.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8010")),
        log_level=Config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
