"""
JavaScript evaluated inside the driven page.

The init script installs the page-side harness runtime (`window.__pagepilot__`):
in-page test code calls `__pagepilot__.bridge(args, callback)` to park a
callback for the orchestrator, and `__pagepilot__.ready()` once it has
rendered. The remaining snippets are evaluated by the orchestrator.
"""

from __future__ import annotations

from .constants import GATEWAY_NAME, HARNESS_NAME

# Installed with `page.add_init_script`; idempotent per document.
HARNESS_RUNTIME_SCRIPT = (
    r"""
(() => {
  const GATEWAY = "%(gateway)s";
  const HARNESS = "%(harness)s";
  if (window[HARNESS]) return;

  const deferred = () => {
    let resolve;
    let reject;
    const promise = new Promise((res, rej) => {
      resolve = res;
      reject = rej;
    });
    return { promise, resolve, reject };
  };

  const serializeError = (error) => {
    if (error instanceof Error) {
      return { name: error.name, message: error.message, stack: error.stack || null };
    }
    try {
      return { name: "Error", message: JSON.stringify(error) };
    } catch (_e) {
      return { name: "Error", message: String(error) };
    }
  };

  window[HARNESS] = {
    serializeError,
    bridge(args, callback) {
      if (callback === undefined) {
        callback = args;
        args = undefined;
      }
      const defer = deferred();
      const gateway = window[GATEWAY];
      if (typeof gateway !== "function") {
        console.log(
          "Test is waiting for a bridge call, you can manually invoke it with: `bridged(...)`. Waiting by:",
          String(callback)
        );
        window.bridged = (passed) => {
          delete window.bridged;
          defer.resolve(passed);
          return callback(passed);
        };
      } else {
        if (gateway.bridgePending) {
          throw new Error("A bridge call is already pending on this page");
        }
        gateway.bridgePending = { callback, defer };
      }
      return defer.promise;
    },
    ready() {
      const gateway = window[GATEWAY];
      if (typeof gateway === "function") return gateway("READY");
    },
    info() {
      const gateway = window[GATEWAY];
      if (typeof gateway === "function") return gateway("GET_INFO");
      return Promise.resolve(null);
    },
  };
})();
"""
    % {"gateway": GATEWAY_NAME, "harness": HARNESS_NAME}
)

# Runs the pending (or explicitly passed) callback and posts exactly one
# BRIDGE reply. Does not wait for the callback: the reply arrives through the
# gateway.
INVOKE_BRIDGE_SCRIPT = r"""
({ passed, callback, gateway }) => {
  const api = window[gateway];
  const serializeError = (error) =>
    error instanceof Error
      ? { name: error.name, message: error.message, stack: error.stack || null }
      : { name: "Error", message: String(error) };

  let fn;
  let defer = null;
  try {
    if (callback) {
      fn = (0, eval)(`(${callback})`);
    } else {
      const pending = api.bridgePending;
      if (!pending) throw new Error("No bridge call is pending on this page");
      delete api.bridgePending;
      fn = pending.callback;
      defer = pending.defer;
    }
  } catch (error) {
    api("BRIDGE", { error: serializeError(error) });
    return;
  }

  Promise.resolve()
    .then(() => fn(passed))
    .then(
      (result) => {
        api("BRIDGE", { result: result === undefined ? null : result });
        if (defer) defer.resolve(result);
      },
      (error) => {
        api("BRIDGE", { error: serializeError(error) });
        if (defer) defer.reject(error);
      }
    );
}
"""

LOCATION_HREF_SCRIPT = "() => location.href"

DEBUG_URL_SCRIPT = r"""
({ testName, testPath }) => {
  const url = new URL(window.location.href);
  url.searchParams.set("test_name", testName);
  url.searchParams.set("test_path", testPath);
  const debugUrl = url.toString().replace(/%2F/g, "/");
  console.log(`Go to ${debugUrl} to debug this test`);
  return debugUrl;
}
"""
