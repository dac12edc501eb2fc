"""
Sweetlease Server Runner
========================
Run this directly: python run_server.py
Host, port and debug mode come from the environment / .env (see app.core.config).
"""
import sys

# Fix console encoding for Windows
if sys.platform == 'win32':
    try:
        sys.stdout.reconfigure(encoding='utf-8', errors='replace')
        sys.stderr.reconfigure(encoding='utf-8', errors='replace')
    except (AttributeError, OSError):
        pass  # Older Python or redirected output


def main():
    from app.core.config import get_settings
    settings = get_settings()

    print()
    print("=" * 60)
    print(f"  {settings.app_name.upper()} SERVER v{settings.app_version}")
    print("=" * 60)
    print()
    print(f"  API:       http://localhost:{settings.port}/api/lease")
    if settings.enable_docs:
        print(f"  API Docs:  http://localhost:{settings.port}/api/docs")
    print(f"  Gemini:    {'configured' if settings.ai_configured else 'NOT CONFIGURED (set GEMINI_API_KEY)'}")
    print()
    print("  Press Ctrl+C to stop")
    print("=" * 60)
    print()

    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
