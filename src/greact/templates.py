"""Text of the files greact generates for the bundler."""

from pathlib import Path

TEMPLATE_FILE = ".greact-template.html"
RENDERER_FILE = ".greact-renderer.js"
HYDRATER_FILE = ".greact-hydrater.js"
WEBPACK_CONFIG_FILE = "webpack.config.js"
SERVER_WEBPACK_CONFIG_FILE = "server-webpack.config.js"

PAGE_EXTENSION = ".js"

HTML_TEMPLATE = """\
<html>

<head>
  <title>SSR Demo</title>
  <meta charset="utf-8" />
</head>

<body>
  <div id="root">{{SSR}}</div>
</body>
<script>
  const hydrateDOM = (fn) => {
    if (document.readyState != 'loading') {
      fn();
    } else {
      document.addEventListener('DOMContentLoaded', fn);
    }
  }

  hydrateDOM(function () {
    // {{__HYDRATION__}}
  })
</script>

</html>"""

REFRESH_SCRIPT = """<script type="text/javascript">
const socket = new WebSocket('%(url)s');
  socket.onmessage = function (event) {
    if (event.data === 'refresh') {
      window.location.reload();
    }
  }</script>"""

HYDRATER = """\
import React from 'react';
import ReactDOM from 'react-dom';

const _page = ({component, props}) => {
    return React.createElement(component, props);
}

const hydrate = (component, props) => {
    ReactDOM.hydrate(_page({component, props}), document.getElementById('root'));
}

export default hydrate;"""

SAMPLE_PAGE_FILE = "index.js"
PACKAGE_JSON_FILE = "package.json"

SAMPLE_PAGE = """\
import React from 'react';

const App = ({name}) => {
    const [count, setCount] = React.useState(0);

    React.useEffect(() => {
        if (count === 10) {
            setCount(0);
        }
    }, [count]);

    return (
        <div>
            { name ? <h1>Welcome to gReact, {name}!</h1> : <h1>Welcome to gReact!</h1> }
            <h2>Count: {count}</h2>
            <button onClick={() => setCount(count + 1)}>Increment</button>
        </div>
    );
}

export default App;
"""

# Dependencies are listed rather than installed; `npm install` fetches them
PACKAGE_JSON = """\
{
  "name": "greact",
  "version": "1.0.0",
  "author": "",
  "private": true,
  "dependencies": {
    "react": "^18.2.0",
    "react-dom": "^18.2.0"
  },
  "devDependencies": {
    "@babel/cli": "^7.23.0",
    "@babel/core": "^7.23.0",
    "@babel/plugin-transform-react-jsx-source": "^7.23.0",
    "@babel/preset-react": "^7.23.0",
    "babel-loader": "^9.1.0",
    "html-webpack-plugin": "^5.5.0",
    "webpack": "^5.89.0",
    "webpack-cli": "^5.1.0",
    "webpack-dev-server": "^4.15.0"
  }
}
"""

WEBPACK_CONFIG_TEMPLATE = """\
const path = require('path');
const HtmlWebpackPlugin = require('html-webpack-plugin');

module.exports = {
	entry: {
		%(entry_points)s
		render: path.join(__dirname, "%(build_folder)s", "%(renderer)s"),
	},
	output: {
		path: path.join(__dirname, "%(static_folder)s"),
		filename: "[name].[contenthash:8].js",
		libraryTarget: "umd",
		library: "[name]",
		clean: true,
	},
	module: {
		rules: [
			{
				test: /\\.?js$/,
				exclude: /node_modules/,
				use: {
					loader: "babel-loader",
					options: {
						plugins: ['@babel/plugin-transform-react-jsx']
					}
				}
			},
		]
	},
	optimization: {
		runtimeChunk: 'single',
		chunkIds: 'deterministic',
		splitChunks: {
			chunks: 'all',
			maxInitialRequests: Infinity,
			minSize: 0,
			cacheGroups: {
				vendor: {
					test: /[\\\\/]node_modules[\\\\/]/,
					name(module) {
						const packageName = module.context.match(/[\\\\/]node_modules[\\\\/](.*?)([\\\\/]|$)/)[1];
						return `npm.${packageName.replace('@', '')}`;
					},
				},
			},
		},
	},
	plugins: [
		%(html_plugins)s
	],
};"""

HTML_PLUGIN_TEMPLATE = """new HtmlWebpackPlugin({
			template: path.join(__dirname, '%(build_folder)s', '%(template)s'),
			filename: '%(page)s.html',
			chunks: ['render', '%(page)s'],
			publicPath: '%(public_path)s',
		}),"""


def page_names(files: list[str]) -> list[str]:
    """Page names (file stems) of the page sources among ``files``, sorted."""
    return sorted(Path(name).stem for name in files if Path(name).suffix == PAGE_EXTENSION)


def html_template(reload_url: str | None = None) -> str:
    """HTML shell for every page; with ``reload_url`` the live-reload script is injected."""
    if reload_url is None:
        return HTML_TEMPLATE
    return HTML_TEMPLATE.replace("</head>", REFRESH_SCRIPT % {"url": reload_url} + "</head>", 1)


def _component_name(page: str) -> str:
    return page[:1].upper() + page[1:]


def renderer(pages: list[str], source_folder: str) -> str:
    """Server-side render module dispatching on page name."""
    lines = [
        "import React from 'react';",
        "import * as ReactDOMServer from 'react-dom/server';",
    ]
    for page in pages:
        lines.append(f"import {_component_name(page)} from '../{source_folder}/{page}.js';")
    lines.append("")

    for page in pages:
        component = _component_name(page)
        lines.append(f"const render{component} = (props) => {{")
        lines.append(f"    return ReactDOMServer.renderToString(React.createElement({component}, props));")
        lines.append("}")
        lines.append("")

    lines.append("const render = (page, props) => {")
    for page in pages:
        lines.append(f"    if (page === '{page}') {{")
        lines.append(f"        return render{_component_name(page)}(props);")
        lines.append("    }")
    lines.append("}")
    lines.append("")
    lines.append("export default render;")
    return "\n".join(lines) + "\n"


def webpack_config(pages: list[str], source_folder: str, build_folder: str, static_folder: str, public_path: str) -> str:
    """Client bundle config with one entry point and one HTML page per page source."""
    entry_points = "".join(
        f"{page}: path.join(__dirname, '{source_folder}', '{page}{PAGE_EXTENSION}'),\n\t\t" for page in pages
    )
    html_plugins = "".join(
        HTML_PLUGIN_TEMPLATE
        % {"build_folder": build_folder, "template": TEMPLATE_FILE, "page": page, "public_path": public_path}
        + "\n\t\t"
        for page in pages
    )
    return WEBPACK_CONFIG_TEMPLATE % {
        "entry_points": entry_points,
        "build_folder": build_folder,
        "renderer": RENDERER_FILE,
        "static_folder": static_folder,
        "html_plugins": html_plugins,
    }
