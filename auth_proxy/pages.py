"""HTML served or injected by the proxy itself."""

import html
from string import Template

MAINTENANCE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Service Unavailable</title>
  <style>
    body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background: linear-gradient(rgba(0, 0, 0, 0.5), rgba(0, 0, 0, 0.5)), url('/auth/bg.jpg') no-repeat center center fixed; background-size: cover; display: flex; align-items: center; justify-content: center; height: 100vh; margin: 0; }
    .container { background-color: #ffffff; padding: 50px; border-radius: 10px; box-shadow: 0 10px 25px rgba(0,0,0,0.1); max-width: 500px; text-align: center; border-top: 6px solid #dc3545; }
    h1 { font-size: 32px; color: #dc3545; margin-top: 0; margin-bottom: 15px; }
    p { font-size: 16px; line-height: 1.6; color: #555; margin-bottom: 0; }
    .icon { margin-bottom: 20px; }
  </style>
</head>
<body>
  <div class="container">
    <div class="icon">
      <svg width="64" height="64" viewBox="0 0 24 24" fill="none" stroke="#dc3545" stroke-width="2" stroke-linecap="round" stroke-linejoin="round"><circle cx="12" cy="12" r="10"></circle><line x1="12" y1="8" x2="12" y2="12"></line><line x1="12" y1="16" x2="12.01" y2="16"></line></svg>
    </div>
    <h1>503 - Service Unavailable</h1>
    <p>The backend service is temporarily unavailable.</p>
    <p>Please contact the Cloud Platform Team for assistance.</p>
  </div>
</body>
</html>"""

_PROFILE_TEMPLATE = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>User Profile</title>
  <style>
    body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background: linear-gradient(rgba(0, 0, 0, 0.5), rgba(0, 0, 0, 0.5)), url('/auth/bg.jpg') no-repeat center center fixed; background-size: cover; display: flex; align-items: center; justify-content: center; height: 100vh; margin: 0; }
    .container { background-color: #ffffff; padding: 40px; border-radius: 10px; box-shadow: 0 10px 25px rgba(0,0,0,0.1); width: 100%; max-width: 400px; text-align: center; }
    h1 { margin-top: 0; color: #333; }
    .avatar { font-size: 64px; margin-bottom: 10px; }
    .info { text-align: left; background: #f8f9fa; padding: 15px; border-radius: 5px; margin: 20px 0; }
    .info p { margin: 5px 0; color: #555; }
    .btn { display: inline-block; padding: 10px 20px; background-color: #007bff; color: white; text-decoration: none; border-radius: 4px; margin: 5px; }
    .btn:hover { background-color: #0056b3; }
    .btn-logout { background-color: #dc3545; }
    .btn-logout:hover { background-color: #c82333; }
  </style>
</head>
<body>
  <div class="container">
    <div class="avatar">&#128100;</div>
    <h1>$username</h1>
    <div class="info">
      <p><strong>Username:</strong> $username</p>
      <p><strong>Role:</strong> Administrator</p>
    </div>
    <a href="/" class="btn">Back to Home</a>
    <a href="/logout" class="btn btn-logout">Logout</a>
  </div>
</body>
</html>"""
)

_USER_MENU_TEMPLATE = Template(
    """
<!-- Injected by proxy -->
<style>
  #proxy-user-menu {
    position: fixed; top: 10px; right: 10px; z-index: 99999; font-family: sans-serif; font-size: 14px;
  }
  .proxy-user-btn {
    background-color: #f8f9fa; color: #212529; border: 1px solid #dee2e6;
    padding: 8px 12px; border-radius: 4px;
    cursor: pointer; box-shadow: 0 2px 5px rgba(0,0,0,0.1); display: flex; align-items: center; gap: 8px;
  }
  .proxy-user-btn:hover { background: #f0f0f0; }
  .proxy-dropdown-content {
    display: none; position: absolute; right: 0; top: 100%; background-color: #fff;
    min-width: 140px; box-shadow: 0 8px 16px rgba(0,0,0,0.2); z-index: 1; border-radius: 4px;
    border: 1px solid #ddd; margin-top: 4px;
  }
  .proxy-dropdown-content::before {
    content: ""; position: absolute; top: -10px; left: 0; width: 100%; height: 10px;
  }
  #proxy-user-menu:hover .proxy-dropdown-content { display: block; }
  .proxy-dropdown-content a { color: #333; padding: 10px 12px; text-decoration: none; display: block; }
  .proxy-dropdown-content a:hover { background-color: #f1f1f1; }
  #session-modal {
    display: none; position: fixed; z-index: 100000; left: 0; top: 0; width: 100%; height: 100%;
    background-color: rgba(0,0,0,0.5); align-items: center; justify-content: center;
  }
  .session-modal-content {
    background-color: #fff; width: 350px; border-radius: 8px; text-align: center;
    font-family: sans-serif; box-shadow: 0 5px 15px rgba(0,0,0,0.3); overflow: hidden; padding: 0;
  }
  .session-modal-header { background-color: #f0ad4e; color: white; padding: 15px; font-size: 18px; }
  .session-modal-body { padding: 20px; color: #333; }
  .session-progress-container {
    width: 100%; background-color: #ddd; height: 10px; margin: 15px 0; border-radius: 5px; overflow: hidden;
  }
  #session-progress-bar { width: 100%; height: 100%; background-color: #4CAF50; transition: width 1s linear; }
  .session-btn { padding: 8px 16px; margin: 0 5px; cursor: pointer; border: none; border-radius: 4px; font-size: 14px; }
  .session-btn:hover { opacity: 0.9; }
  .btn-continue { background-color: #4CAF50; color: white; }
  .btn-logout { background-color: #f44336; color: white; }
</style>

<div id="proxy-user-menu">
  <div class="proxy-user-btn">
    <span id="statusbar-countdown" style="display:none; color: #d9534f; font-weight: bold; margin-right: 8px;"></span>
    <span>&#128100; $username</span>
    <span style="font-size: 10px;">&#9660;</span>
  </div>
  <div class="proxy-dropdown-content">
    <a href="/profile">Profile</a>
    <a href="/logout">Logout</a>
  </div>
</div>

<div id="session-modal">
  <div class="session-modal-content">
    <div class="session-modal-header">
      <h3>&#9200; Session Timeout</h3>
    </div>
    <div class="session-modal-body">
      <p>Your session is about to terminate.</p>
      <p>Time remaining: <strong id="session-countdown">$warning_seconds</strong> seconds.</p>
      <div class="session-progress-container">
        <div id="session-progress-bar"></div>
      </div>
      <button class="session-btn btn-continue" onclick="extendSession()">Continue Session</button>
      <button class="session-btn btn-logout" onclick="location.href='/logout'">Logout</button>
    </div>
  </div>
</div>

<script>
  (function() {
    var idleTime = $idle_ms;
    var warningTime = $warning_seconds;
    var idleTimer, countdownInterval;

    function startIdleTimer() {
      clearTimeout(idleTimer);
      idleTimer = setTimeout(showWarning, idleTime);
    }

    function showWarning() {
      var modal = document.getElementById('session-modal');
      var bar = document.getElementById('session-progress-bar');
      var countSpan = document.getElementById('session-countdown');
      var statusSpan = document.getElementById('statusbar-countdown');
      var remaining = warningTime;

      modal.style.display = 'flex';
      if (statusSpan) {
        statusSpan.style.display = 'inline';
        statusSpan.innerText = remaining;
      }
      bar.style.width = '100%';
      bar.style.backgroundColor = '#4CAF50';
      countSpan.innerText = remaining;

      countdownInterval = setInterval(function() {
        remaining--;
        countSpan.innerText = remaining;
        if (statusSpan) statusSpan.innerText = remaining;
        bar.style.width = (remaining / warningTime * 100) + '%';
        if (remaining < 10) bar.style.backgroundColor = '#f44336';
        if (remaining <= 0) {
          clearInterval(countdownInterval);
          window.location.href = '/logout';
        }
      }, 1000);
    }

    window.extendSession = function() {
      clearInterval(countdownInterval);
      document.getElementById('session-modal').style.display = 'none';
      var statusSpan = document.getElementById('statusbar-countdown');
      if (statusSpan) statusSpan.style.display = 'none';
      fetch('/keep-alive', { credentials: 'same-origin' });
      startIdleTimer();
    };

    function resetIdle() {
      if (document.getElementById('session-modal').style.display !== 'flex') {
        startIdleTimer();
      }
    }
    document.addEventListener('mousemove', resetIdle);
    document.addEventListener('keypress', resetIdle);
    document.addEventListener('click', resetIdle);

    startIdleTimer();
  })();
</script>
<!-- End of proxy injection -->"""
)

# Idle time before the warning modal, then the countdown before auto-logout
IDLE_WARNING_AFTER_MS = 60 * 60 * 1000
WARNING_COUNTDOWN_SECONDS = 5 * 60


def profile_page(username: str) -> str:
    return _PROFILE_TEMPLATE.substitute(username=html.escape(username))


def user_menu_fragment(username: str) -> str:
    return _USER_MENU_TEMPLATE.substitute(
        username=html.escape(username),
        idle_ms=IDLE_WARNING_AFTER_MS,
        warning_seconds=WARNING_COUNTDOWN_SECONDS,
    )
