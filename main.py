import os

from honesta import create_app


app = create_app()

if __name__ == '__main__':
    print("Starting HONESTA Lost & Found API...")
    print("Available routes:")
    print("  GET    /health                       - Service status")
    print("  POST   /register                     - Create a campus account")
    print("  POST   /login                        - Sign in")
    print("  POST   /logout                       - Sign out")
    print("  GET    /me                           - Current user")
    print("  GET    /api/items?q=                 - Shared feed")
    print("  POST   /api/items                    - Report a found item")
    print("  GET    /api/items/<id>               - Item details")
    print("  POST   /api/items/<id>/claim         - Answer the ownership questions")
    print("  GET    /api/items/<id>/messages      - Chat with the founder")
    print("  POST   /api/items/<id>/messages      - Send a chat message")
    print("  POST   /api/items/<id>/handover      - Mark as returned")
    print("  DELETE /api/items/<id>               - Remove a report")

    app.run(debug=os.getenv('FLASK_DEBUG') == '1', host='0.0.0.0', port=int(os.getenv('PORT', 5000)))
