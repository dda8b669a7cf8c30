import os
import socket
import uvicorn


def get_lan_ip():
    try:
        # Connect to a public DNS server to determine the route
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except OSError:
        return "127.0.0.1"


def main():
    lan_ip = get_lan_ip()
    port = int(os.getenv("PORT", "8000"))

    print("\n" + "=" * 60)
    print("SERVER STARTING")
    print(f"LAN URL:  http://{lan_ip}:{port}/login")
    print(f"Local:    http://127.0.0.1:{port}/login")
    print(f"Socket:   ws://127.0.0.1:{port}/ws")
    print("-" * 60)
    if not os.getenv("TG_API_ID") or not os.getenv("TG_API_HASH"):
        print("WARNING: TG_API_ID / TG_API_HASH are not set, logins will fail.")
    print("=" * 60 + "\n")

    uvicorn.run(
        "tg_login.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )


if __name__ == "__main__":
    main()
