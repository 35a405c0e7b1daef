# Rewriting web proxy that lets third-party pages run inside an iframe.

import os

from frameproxy import create_app

app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, threaded=True, debug=os.environ.get('FLASK_DEBUG') == '1')
